"""Identifier, invite code and avatar generation."""

from __future__ import annotations

import secrets
import string
from typing import Callable, Sequence

ROOM_ID_PREFIX = "room_"
ROOM_ID_LENGTH = 9
INVITE_CODE_LENGTH = 8
MAX_ATTEMPTS = 10

ROOM_ID_ALPHABET = string.ascii_lowercase + string.digits
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits

AVATARS: tuple[str, ...] = (
    "\U0001F468‍\U0001F4BB",
    "\U0001F469‍\U0001F3A8",
    "\U0001F3B5",
    "\U0001F469‍\U0001F3A4",
    "\U0001F468‍\U0001F680",
    "\U0001F9D1‍\U0001F393",
    "\U0001F469‍\U0001F52C",
    "\U0001F9D1‍\U0001F3AF",
)
HOST_AVATAR = AVATARS[0]


class IdentifierExhaustedError(RuntimeError):
    """Raised when no unused identifier could be produced."""


class IdentifierGenerator:
    """Produce room ids and invite codes that are unique in a registry.

    Subclasses override :meth:`token` or :meth:`choose` to make the
    sequence deterministic in tests.
    """

    def token(self, length: int, alphabet: str) -> str:
        return "".join(secrets.choice(alphabet) for _ in range(length))

    def choose(self, options: Sequence[str]) -> str:
        return secrets.choice(options)

    def room_id(self, exists: Callable[[str], bool]) -> str:
        return self._unique(
            lambda: ROOM_ID_PREFIX + self.token(ROOM_ID_LENGTH, ROOM_ID_ALPHABET),
            exists,
            "room id",
        )

    def invite_code(self, exists: Callable[[str], bool]) -> str:
        return self._unique(
            lambda: self.token(INVITE_CODE_LENGTH, INVITE_CODE_ALPHABET),
            exists,
            "invite code",
        )

    def avatar(self) -> str:
        return self.choose(AVATARS)

    @staticmethod
    def _unique(factory: Callable[[], str], exists: Callable[[str], bool], kind: str) -> str:
        for _ in range(MAX_ATTEMPTS):
            candidate = factory()
            if not exists(candidate):
                return candidate
        raise IdentifierExhaustedError(f"Unable to generate unique {kind}")


__all__ = [
    "AVATARS",
    "HOST_AVATAR",
    "IdentifierExhaustedError",
    "IdentifierGenerator",
]
