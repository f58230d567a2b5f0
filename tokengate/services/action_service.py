"""
Token-gated account actions: password reset and e-mail verification.
"""

from __future__ import annotations

import html
import logging
from typing import Any, Mapping, Optional

from tokengate.core.config import Settings
from tokengate.core.log import security_logger
from tokengate.core.mailer import Message, Notifier
from tokengate.core.security import hash_password
from tokengate.core.utils import absolute_url
from tokengate.domain.errors import ActionMismatch, ApplyFailed, DeliveryFailed
from tokengate.domain.tokens import ACTION_PATHS, ActionKind, ActionToken, TokenStatus
from tokengate.repositories.token_store import TokenStore
from tokengate.repositories.user_repository import UserDirectory

logger = logging.getLogger(__name__)


class ActionAuthorizer:
    """Couples token issuance/consumption to the guarded mutation and the notifier."""

    def __init__(
        self,
        store: TokenStore,
        users: UserDirectory,
        notifier: Notifier,
        *,
        public_base_url: str,
        delivery_attempts: int = 1,
    ) -> None:
        self.store = store
        self.users = users
        self.notifier = notifier
        self.public_base_url = public_base_url
        self.delivery_attempts = max(1, delivery_attempts)

    @classmethod
    def from_settings(cls, settings: Settings, store: TokenStore, users: UserDirectory, notifier: Notifier) -> "ActionAuthorizer":
        return cls(
            store,
            users,
            notifier,
            public_base_url=settings.public_base_url,
            delivery_attempts=settings.delivery_attempts,
        )

    # -------------------------------------- helpers --------------------------------------
    def action_url(self, token: ActionToken) -> str:
        return absolute_url(ACTION_PATHS[token.action_kind], self.public_base_url, {"token": token.token_value})

    def _render(self, token: ActionToken) -> Message:
        url = self.action_url(token)
        link = html.escape(url, quote=True)
        if token.action_kind is ActionKind.PASSWORD_RESET:
            return Message(
                subject="Redefina sua senha",
                html_body=f"""
        <p>Olá!</p>
        <p>Recebemos um pedido para redefinir sua senha.</p>
        <p><a href="{link}" style="background:#0ea5e9;color:#fff;padding:12px 18px;border-radius:8px;text-decoration:none;">Redefinir senha</a></p>
        <p>Se não foi você, ignore esta mensagem.</p>
        """,
                text_body=f"Use este link para redefinir sua senha: {url}",
            )
        return Message(
            subject="Confirme seu e-mail",
            html_body=f"""
        <p>Olá!</p>
        <p>Para concluir seu acesso, confirme seu e-mail clicando no botão abaixo:</p>
        <p><a href="{link}" style="background:#0ea5e9;color:#fff;padding:12px 18px;border-radius:8px;text-decoration:none;">Confirmar meu e-mail</a></p>
        <p>Se o botão não funcionar, copie e cole este link no navegador:</p>
        <p><a href="{link}">{link}</a></p>
        """,
            text_body=f"Confirme seu e-mail: {url}",
        )

    def _deliver(self, address: str, token: ActionToken) -> None:
        """Send the link, retrying with the same token; never reissues."""
        message = self._render(token)
        last_error: Optional[DeliveryFailed] = None
        for attempt in range(1, self.delivery_attempts + 1):
            try:
                self.notifier.deliver(address, message)
                return
            except DeliveryFailed as exc:
                last_error = exc
                logger.warning(
                    "delivery attempt %s/%s failed subject=%s kind=%s",
                    attempt,
                    self.delivery_attempts,
                    token.subject_id,
                    token.action_kind.value,
                )
        raise DeliveryFailed("Nao foi possivel enviar o e-mail.", token=token) from last_error

    @staticmethod
    def _password_from(payload: Mapping[str, Any] | None) -> str:
        password = (payload or {}).get("password")
        if not isinstance(password, str) or not password:
            raise ValueError("password is required for a password reset")
        return password

    # -------------------------------------- request --------------------------------------
    def request_action(self, subject_id: int, action_kind: ActionKind | str) -> None:
        """
        Issue a token for the subject and e-mail it.

        Unknown subjects (and already verified addresses) return quietly so the
        caller cannot tell whether an account exists. Raises DeliveryFailed
        when the notifier gives up; the token stays valid for ``redeliver``.
        """
        kind = ActionKind(action_kind)
        user = self.users.find_by_subject_id(subject_id)
        if user is None:
            security_logger.info("action_requested_unknown_subject subject=%s kind=%s", subject_id, kind.value)
            return
        if kind is ActionKind.EMAIL_VERIFICATION and user.email_verified_at:
            logger.info("email already verified subject=%s; nothing to send", subject_id)
            return
        token = self.store.issue(user.id, kind)
        security_logger.info("action_requested subject=%s kind=%s", user.id, kind.value)
        self._deliver(user.email, token)

    def request_action_for_email(self, email: str, action_kind: ActionKind | str) -> None:
        kind = ActionKind(action_kind)
        user = self.users.find_by_email(email)
        if user is None:
            security_logger.info("action_requested_unknown_email kind=%s", kind.value)
            return
        self.request_action(user.id, kind)

    def redeliver(self, token: ActionToken) -> None:
        """Resend the link of an already issued token (same value, no reissue)."""
        if not token.token_value:
            raise ValueError("redeliver needs the raw token value")
        current = self.store.lookup(token.token_value)
        if current is None or current.status(self.store.now()) is not TokenStatus.LIVE:
            logger.info("redeliver skipped: token no longer live subject=%s", token.subject_id)
            return
        user = self.users.find_by_subject_id(current.subject_id)
        if user is None:
            return
        self._deliver(user.email, current)

    # -------------------------------------- complete --------------------------------------
    def complete_action(
        self,
        token_value: str,
        action_kind: ActionKind | str,
        payload: Mapping[str, Any] | None = None,
    ) -> ActionToken:
        """
        Consume the token and apply the guarded mutation.

        The token is consumed before anything else; a kind mismatch or a failed
        mutation leaves it consumed and the caller must request a new one.
        """
        kind = ActionKind(action_kind)
        password = self._password_from(payload) if kind is ActionKind.PASSWORD_RESET else None
        token = self.store.validate_and_consume(token_value)
        if token.action_kind is not kind:
            security_logger.warning(
                "token_rejected code=%s subject=%s kind=%s expected=%s",
                ActionMismatch.code,
                token.subject_id,
                token.action_kind.value,
                kind.value,
            )
            raise ActionMismatch()
        try:
            if kind is ActionKind.PASSWORD_RESET:
                self.users.update_credential(token.subject_id, hash_password(password))
            else:
                self.users.mark_email_verified(token.subject_id)
        except Exception as exc:
            logger.error("guarded action failed subject=%s kind=%s: %s", token.subject_id, kind.value, exc.__class__.__name__)
            raise ApplyFailed("Nao foi possivel concluir a acao; solicite um novo link.") from exc
        security_logger.info("action_completed subject=%s kind=%s", token.subject_id, kind.value)
        return token

    def check_token(self, token_value: str, action_kind: ActionKind | str) -> bool:
        """Non-consuming check used before rendering the reset form."""
        kind = ActionKind(action_kind)
        token = self.store.lookup(token_value)
        if token is None or token.action_kind is not kind:
            return False
        return token.status(self.store.now()) is TokenStatus.LIVE

    def revoke(self, subject_id: int, action_kind: ActionKind | str | None = None) -> int:
        """Invalidate live tokens of the subject (all kinds when none is given)."""
        kinds = [ActionKind(action_kind)] if action_kind is not None else list(ActionKind)
        return sum(self.store.invalidate(subject_id, kind) for kind in kinds)
