"""Error taxonomy for the token lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from tokengate.domain.tokens import ActionToken

GENERIC_TOKEN_MESSAGE = "Token invalido ou expirado."


class ActionError(Exception):
    """Base class for token-gated action exceptions."""

    code = "action_error"


class TokenInvalidError(ActionError):
    """Any condition where a presented token cannot authorize the action."""

    code = "token_invalid"

    def __init__(self, message: str = GENERIC_TOKEN_MESSAGE):
        super().__init__(message)


class TokenNotFound(TokenInvalidError):
    code = "not_found"


class TokenExpired(TokenInvalidError):
    code = "expired"


class TokenAlreadyConsumed(TokenInvalidError):
    code = "already_consumed"


class ActionMismatch(TokenInvalidError):
    code = "action_mismatch"


class StoreUnavailable(ActionError):
    """Durable store could not be reached or did not answer in time."""

    code = "store_unavailable"


class DeliveryFailed(ActionError):
    """Notifier could not deliver; the issued token (if any) stays valid."""

    code = "delivery_failed"

    def __init__(self, message: str, token: Optional["ActionToken"] = None):
        super().__init__(message)
        self.token = token


class ApplyFailed(ActionError):
    """Guarded mutation failed after the token was consumed."""

    code = "apply_failed"
