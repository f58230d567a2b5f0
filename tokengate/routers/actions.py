from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from tokengate.core.config import Settings
from tokengate.core.rate_limiter import RateLimiter, rate_limit_ip
from tokengate.domain.errors import (
    GENERIC_TOKEN_MESSAGE,
    ApplyFailed,
    DeliveryFailed,
    StoreUnavailable,
    TokenInvalidError,
)
from tokengate.domain.tokens import ActionKind
from tokengate.schemas import ActionCompletion, ActionRequest, ActionResponse, TokenCheckResponse
from tokengate.services.action_service import ActionAuthorizer

router = APIRouter(prefix="/auth/actions", tags=["actions"])
logger = logging.getLogger(__name__)

REQUEST_ACCEPTED = "Se o endereco estiver cadastrado, enviaremos um link em instantes."
UNAVAILABLE = "Servico temporariamente indisponivel. Tente novamente em instantes."


def _authorizer(request: Request) -> ActionAuthorizer:
    authorizer = getattr(request.app.state, "authorizer", None)
    if authorizer is None:
        raise RuntimeError("ActionAuthorizer nao configurado")
    return authorizer


@router.post("/request", response_model=ActionResponse, status_code=status.HTTP_202_ACCEPTED)
def request_action(request: Request, body: ActionRequest):
    settings: Settings = request.app.state.settings
    limiter: RateLimiter = request.app.state.rate_limiter
    rate_limit_ip(
        limiter,
        request,
        f"actions:request:{body.action.value}",
        limit=settings.request_rate_limit,
        window_seconds=settings.request_rate_window_seconds,
    )
    try:
        _authorizer(request).request_action_for_email(body.email, body.action)
    except StoreUnavailable:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, UNAVAILABLE)
    except DeliveryFailed:
        # Mesma resposta de sucesso para nao revelar se a conta existe.
        logger.error("delivery failed for %s request; token kept for redelivery", body.action.value)
    return ActionResponse(ok=True, message=REQUEST_ACCEPTED)


@router.post("/complete", response_model=ActionResponse)
def complete_action(request: Request, body: ActionCompletion):
    try:
        _authorizer(request).complete_action(body.token, body.action, body.payload())
    except TokenInvalidError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, GENERIC_TOKEN_MESSAGE)
    except ApplyFailed as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc))
    except StoreUnavailable:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, UNAVAILABLE)
    message = "Senha atualizada." if body.action is ActionKind.PASSWORD_RESET else "E-mail confirmado."
    return ActionResponse(ok=True, message=message)


@router.get("/check", response_model=TokenCheckResponse)
def check_token(request: Request, token: str = "", action: ActionKind = ActionKind.PASSWORD_RESET):
    try:
        valid = _authorizer(request).check_token(token, action)
    except StoreUnavailable:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, UNAVAILABLE)
    return TokenCheckResponse(valid=valid)
