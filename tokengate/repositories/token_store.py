"""Durable custody of action tokens backed by SQLAlchemy."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
import logging
from typing import Callable, Iterator, Mapping, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError, TimeoutError as PoolTimeoutError

from tokengate.core.config import Settings
from tokengate.core.log import security_logger
from tokengate.core.security import new_token_value, token_digest
from tokengate.core.utils import as_utc, utcnow
from tokengate.db.models import ActionTokenRecord
from tokengate.db.session import Database
from tokengate.domain.errors import (
    StoreUnavailable,
    TokenAlreadyConsumed,
    TokenExpired,
    TokenInvalidError,
    TokenNotFound,
)
from tokengate.domain.tokens import ActionKind, ActionToken, TokenStatus, live_key, ttl_table

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TokenStore:
    """
    Issue, look up and consume action tokens.

    Every mutation is either a single conditional UPDATE or a single
    transaction, so concurrent request handlers can share one store:

    - ``validate_and_consume`` flips ``consumed_at`` with
      ``UPDATE ... WHERE consumed_at IS NULL``; only one caller gets a row back.
    - ``issue`` invalidates the previous live token and inserts the new one in
      the same transaction. The unique ``live_key`` column makes a concurrent
      issuer of the same pair fail with IntegrityError; it then retries.
    """

    ISSUE_ATTEMPTS = 3

    def __init__(
        self,
        db: Database,
        *,
        ttls: Mapping[ActionKind, timedelta],
        token_bytes: int = 32,
        clock: Clock = utcnow,
    ) -> None:
        missing = [kind.value for kind in ActionKind if kind not in ttls]
        if missing:
            raise ValueError(f"TTL missing for action kinds: {', '.join(missing)}")
        self.db = db
        self.ttls = dict(ttls)
        self.token_bytes = token_bytes
        self.clock = clock

    @classmethod
    def from_settings(cls, db: Database, settings: Settings, clock: Clock = utcnow) -> "TokenStore":
        return cls(db, ttls=ttl_table(settings), token_bytes=settings.token_bytes, clock=clock)

    # -------------------------------------- helpers --------------------------------------
    def now(self) -> datetime:
        return as_utc(self.clock())

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except (PoolTimeoutError, DBAPIError) as exc:
            logger.warning("token store %s failed: %s", operation, exc.__class__.__name__)
            raise StoreUnavailable(f"Token store unavailable during {operation}.") from exc
        except SQLAlchemyError as exc:
            logger.error("token store %s error: %s", operation, exc.__class__.__name__)
            raise StoreUnavailable(f"Token store error during {operation}.") from exc

    @staticmethod
    def _to_token(record: ActionTokenRecord, token_value: Optional[str]) -> ActionToken:
        return ActionToken(
            token_value=token_value,
            subject_id=record.subject_id,
            action_kind=ActionKind(record.action_kind),
            issued_at=as_utc(record.issued_at),
            expires_at=as_utc(record.expires_at),
            consumed_at=as_utc(record.consumed_at),
            invalidated_at=as_utc(record.invalidated_at),
        )

    @staticmethod
    def _release(session, subject_id: int, action_kind: ActionKind, now: datetime) -> int:
        """Free the pair's ``live_key``; returns how many still-live tokens were invalidated."""
        key = live_key(subject_id, action_kind)
        invalidated = session.execute(
            update(ActionTokenRecord)
            .where(ActionTokenRecord.live_key == key, ActionTokenRecord.expires_at >= now)
            .values(live_key=None, invalidated_at=now)
            .execution_options(synchronize_session=False)
        )
        count = invalidated.rowcount or 0
        # ja expirado pelo TTL: so libera a chave
        session.execute(
            update(ActionTokenRecord)
            .where(ActionTokenRecord.live_key == key, ActionTokenRecord.expires_at < now)
            .values(live_key=None)
            .execution_options(synchronize_session=False)
        )
        return count

    # -------------------------------------- operations --------------------------------------
    def issue(self, subject_id: int, action_kind: ActionKind | str) -> ActionToken:
        """Mint a new token for the pair, invalidating any previous live one."""
        kind = ActionKind(action_kind)
        ttl = self.ttls[kind]
        for attempt in range(1, self.ISSUE_ATTEMPTS + 1):
            now = self.now()
            raw = new_token_value(self.token_bytes)
            token = ActionToken(
                token_value=raw,
                subject_id=subject_id,
                action_kind=kind,
                issued_at=now,
                expires_at=now + ttl,
            )
            record = ActionTokenRecord(
                token_hash=token_digest(raw),
                subject_id=subject_id,
                action_kind=kind.value,
                live_key=live_key(subject_id, kind),
                issued_at=token.issued_at,
                expires_at=token.expires_at,
            )
            with self._guard("issue"), self.db.session() as session:
                try:
                    self._release(session, subject_id, kind, now)
                    session.add(record)
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info("concurrent issue for subject=%s kind=%s (attempt %s)", subject_id, kind.value, attempt)
                    continue
            security_logger.info("token_issued subject=%s kind=%s expires_at=%s", subject_id, kind.value, token.expires_at.isoformat())
            return token
        raise StoreUnavailable("Could not issue token after concurrent retries.")

    def validate_and_consume(self, token_value: str) -> ActionToken:
        """
        Consume a live token exactly once.

        Raises TokenNotFound, TokenExpired or TokenAlreadyConsumed; concurrent
        callers presenting the same value all get TokenAlreadyConsumed except
        the single winner.
        """
        value = (token_value or "").strip()
        if not value:
            raise TokenNotFound()
        digest = token_digest(value)
        now = self.now()
        stmt = (
            update(ActionTokenRecord)
            .where(
                ActionTokenRecord.token_hash == digest,
                ActionTokenRecord.consumed_at.is_(None),
                ActionTokenRecord.invalidated_at.is_(None),
                ActionTokenRecord.expires_at >= now,
            )
            .values(consumed_at=now, live_key=None)
            .execution_options(synchronize_session=False)
        )
        with self._guard("consume"), self.db.session() as session:
            result = session.execute(stmt)
            consumed = result.rowcount == 1
            session.commit()
            record = session.execute(select(ActionTokenRecord).where(ActionTokenRecord.token_hash == digest)).scalar_one_or_none()
            token = self._to_token(record, value) if record is not None else None

        if token is None:
            self._reject(TokenNotFound(), None)
        if consumed:
            security_logger.info("token_consumed subject=%s kind=%s", token.subject_id, token.action_kind.value)
            return token
        status = token.status(now)
        if status is TokenStatus.CONSUMED:
            self._reject(TokenAlreadyConsumed(), token)
        if status is not TokenStatus.EXPIRED:
            logger.warning("conditional consume matched no row for a live token (subject=%s)", token.subject_id)
        self._reject(TokenExpired(), token)

    def _reject(self, error: TokenInvalidError, token: Optional[ActionToken]):
        if token is None:
            security_logger.info("token_rejected code=%s", error.code)
        else:
            security_logger.info(
                "token_rejected code=%s subject=%s kind=%s", error.code, token.subject_id, token.action_kind.value
            )
        raise error

    def invalidate(self, subject_id: int, action_kind: ActionKind | str) -> int:
        """Mark any live token of the pair as expired without consuming it."""
        kind = ActionKind(action_kind)
        with self._guard("invalidate"), self.db.session() as session:
            count = self._release(session, subject_id, kind, self.now())
            session.commit()
        if count:
            security_logger.info("token_invalidated subject=%s kind=%s count=%s", subject_id, kind.value, count)
        return count

    def lookup(self, token_value: str) -> Optional[ActionToken]:
        """Read a token by its raw value without consuming it."""
        value = (token_value or "").strip()
        if not value:
            return None
        with self._guard("lookup"), self.db.session() as session:
            record = session.execute(
                select(ActionTokenRecord).where(ActionTokenRecord.token_hash == token_digest(value))
            ).scalar_one_or_none()
            return self._to_token(record, value) if record is not None else None

    def live_token_count(self, subject_id: int, action_kind: ActionKind | str) -> int:
        kind = ActionKind(action_kind)
        now = self.now()
        with self._guard("count"), self.db.session() as session:
            records = session.execute(
                select(ActionTokenRecord).where(
                    ActionTokenRecord.subject_id == subject_id,
                    ActionTokenRecord.action_kind == kind.value,
                )
            ).scalars()
            return sum(1 for r in records if self._to_token(r, None).status(now) is TokenStatus.LIVE)

    def purge(self, older_than: datetime) -> int:
        """Delete terminal tokens whose expiry/consumption/invalidation predates the cutoff."""
        cutoff = min(as_utc(older_than), self.now())
        stmt = delete(ActionTokenRecord).where(
            or_(
                ActionTokenRecord.expires_at < cutoff,
                ActionTokenRecord.consumed_at < cutoff,
                ActionTokenRecord.invalidated_at < cutoff,
            )
        )
        with self._guard("purge"), self.db.session() as session:
            result = session.execute(stmt.execution_options(synchronize_session=False))
            count = result.rowcount or 0
            session.commit()
        logger.info("purged %s action tokens older than %s", count, cutoff.isoformat())
        return count
