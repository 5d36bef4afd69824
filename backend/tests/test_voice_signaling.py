import pytest

from watchparty.voice.signaling import (
    InvalidSignalError,
    SessionDescription,
    build_signal_envelope,
    bye_message,
    candidate_message,
    mute_message,
    offer_message,
    signal_kind,
)


def test_build_signal_envelope_keeps_extra_fields() -> None:
    payload = build_signal_envelope(
        "offer",
        {
            "description": {"type": "offer", "sdp": "v=0"},
            "kind": "answer",
            "mid": "1",
        },
    )
    assert payload == {"kind": "offer", "description": {"type": "offer", "sdp": "v=0"}, "mid": "1"}


def test_build_signal_envelope_rejects_unknown_kind() -> None:
    with pytest.raises(InvalidSignalError):
        build_signal_envelope("renegotiate")


def test_offer_message_serialises_description() -> None:
    message = offer_message(SessionDescription(type="offer", sdp="v=0"))
    assert message == {"kind": "offer", "description": {"type": "offer", "sdp": "v=0"}}


def test_helper_messages_have_expected_shape() -> None:
    assert candidate_message({"candidate": "candidate:1"}) == {
        "kind": "ice-candidate",
        "candidate": {"candidate": "candidate:1"},
    }
    assert mute_message("u-1", True) == {"kind": "mute-changed", "userId": "u-1", "muted": True}
    assert bye_message("u-1") == {"kind": "bye", "userId": "u-1"}


def test_signal_kind_validates_messages() -> None:
    assert signal_kind({"kind": "answer"}) == "answer"
    with pytest.raises(InvalidSignalError):
        signal_kind({"kind": 3})
    with pytest.raises(InvalidSignalError):
        signal_kind({})


def test_session_description_from_payload_requires_fields() -> None:
    assert SessionDescription.from_payload({"type": "answer", "sdp": "v=0"}) == SessionDescription(
        type="answer", sdp="v=0"
    )
    with pytest.raises(InvalidSignalError):
        SessionDescription.from_payload({"type": "answer"})
    with pytest.raises(InvalidSignalError):
        SessionDescription.from_payload("v=0")
