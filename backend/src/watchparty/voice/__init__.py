"""Peer-to-peer voice overlay.

Production adapters live in ``aiortc_adapters`` and ``channel`` and are
imported explicitly by callers that need real media and transport;
``client`` wires them together behind the ``watchparty-voice`` command.
"""

from .coordinator import (  # noqa: F401
    DEFAULT_ICE_SERVERS,
    ConnectionStatus,
    PeerPhase,
    VoiceMeshCoordinator,
    VoicePeerState,
    VoiceUser,
)
from .events import (  # noqa: F401
    PeerJoined,
    PeerLeft,
    PeerMuteChanged,
    SpeakingChanged,
    VoiceEventChannel,
)
from .interfaces import AudioConstraints, MediaAccessError  # noqa: F401
from .signaling import SessionDescription, SignalingDeliveryError  # noqa: F401
from .speaking import SpeakingDetector  # noqa: F401

__all__ = [
    "DEFAULT_ICE_SERVERS",
    "AudioConstraints",
    "ConnectionStatus",
    "MediaAccessError",
    "PeerJoined",
    "PeerLeft",
    "PeerMuteChanged",
    "PeerPhase",
    "SessionDescription",
    "SignalingDeliveryError",
    "SpeakingChanged",
    "SpeakingDetector",
    "VoiceEventChannel",
    "VoiceMeshCoordinator",
    "VoicePeerState",
    "VoiceUser",
]
