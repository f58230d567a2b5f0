"""Action token value objects and the per-kind TTL table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Mapping, Optional

from tokengate.core.config import Settings


class ActionKind(str, Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class TokenStatus(str, Enum):
    LIVE = "live"
    CONSUMED = "consumed"
    EXPIRED = "expired"


# Caminho publico que recebe o token em cada tipo de acao.
ACTION_PATHS: Mapping[ActionKind, str] = {
    ActionKind.PASSWORD_RESET: "/auth/reset",
    ActionKind.EMAIL_VERIFICATION: "/auth/verify",
}


def ttl_table(settings: Settings) -> dict[ActionKind, timedelta]:
    return {
        ActionKind.PASSWORD_RESET: timedelta(seconds=settings.password_reset_ttl),
        ActionKind.EMAIL_VERIFICATION: timedelta(seconds=settings.email_verification_ttl_seconds),
    }


def live_key(subject_id: int, action_kind: ActionKind) -> str:
    """Value of the unique column that allows one live token per (subject, kind)."""
    return f"{subject_id}:{action_kind.value}"


@dataclass(frozen=True)
class ActionToken:
    """
    A single-use authorization for one sensitive account action.

    ``token_value`` is the raw secret; it is only known right after issue or
    when the caller presented it. Stored records carry its digest instead.
    """

    token_value: Optional[str]
    subject_id: int
    action_kind: ActionKind
    issued_at: datetime
    expires_at: datetime
    consumed_at: Optional[datetime] = None
    invalidated_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.invalidated_at is not None or now > self.expires_at

    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def status(self, now: datetime) -> TokenStatus:
        # Consumed is terminal: a used token never turns into "expired".
        if self.is_consumed():
            return TokenStatus.CONSUMED
        if self.is_expired(now):
            return TokenStatus.EXPIRED
        return TokenStatus.LIVE

    def __repr__(self) -> str:
        return (
            f"ActionToken(subject_id={self.subject_id!r}, action_kind={self.action_kind.value!r}, "
            f"expires_at={self.expires_at.isoformat()!r}, consumed={self.is_consumed()})"
        )
