"""Video link resolution endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_media_resolver
from app.monitoring.metrics import media_resolutions_total
from app.schemas import ResolveRequest, VideoInfoSchema
from watchparty.media import MediaResolver

router = APIRouter(prefix="/media", tags=["media"])


@router.post("/resolve", response_model=VideoInfoSchema)
async def resolve_media(
    payload: ResolveRequest,
    resolver: MediaResolver = Depends(get_media_resolver),
) -> VideoInfoSchema:
    """Turn a pasted link into embeddable video metadata."""

    video = await resolver.resolve(payload.url)
    media_resolutions_total.labels(video.platform.value).inc()
    return VideoInfoSchema.model_validate(video)
