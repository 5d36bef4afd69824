from fastapi import APIRouter

from app.api.config import router as config_router
from app.api.invites import router as invites_router
from app.api.media import router as media_router
from app.api.rooms import router as rooms_router

router = APIRouter()

router.include_router(config_router)
router.include_router(rooms_router)
router.include_router(invites_router)
router.include_router(media_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Watch Party API"}
