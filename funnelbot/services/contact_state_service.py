"""Per-contact funnel state persistence.

Writes are compare-and-swap: the caller passes the `updated_at` it read and the
write is refused when another writer got there first.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from funnelbot.logging_config import get_logger
from funnelbot.models import ContactState, UnrecognizedMessage
from funnelbot.services.result import STORE_ERROR, Result
from funnelbot.services.state_machine import NONE_TAG, InvalidStateTagError, StateTag

logger = get_logger("contact_state_service")


class _NoGuard:
    def __repr__(self) -> str:
        return "NO_GUARD"


NO_GUARD = _NoGuard()


class WriteOutcome(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True)
class StateSnapshot:
    contact_id: str
    tag: StateTag
    updated_at: datetime


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContactStateStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def read(self, contact_id: str) -> Result[Optional[StateSnapshot]]:
        """Latest state for a contact.

        Success with None means there is no record. A stored tag that cannot be
        parsed reads as `none` with the row's timestamp, so a guarded write can
        still replace it. Failure means the store could not be read.
        """
        db = self._session_factory()
        try:
            row = db.query(ContactState).filter(ContactState.contact_id == contact_id).first()
            if row is None:
                return Result.success(None)
            try:
                tag = StateTag.decode(row.tag)
            except InvalidStateTagError as e:
                logger.warning(
                    "Unparsable contact state, reading as none",
                    extra={"context": {"contact_id": contact_id, "tag": row.tag, "error": str(e)}},
                )
                tag = NONE_TAG
            return Result.success(StateSnapshot(contact_id=contact_id, tag=tag, updated_at=as_utc(row.updated_at)))
        except SQLAlchemyError as e:
            logger.error("Contact state read failed", extra={"context": {"contact_id": contact_id, "error": str(e)}})
            return Result.failure(str(e), STORE_ERROR)
        finally:
            db.close()

    def get(self, contact_id: str) -> Optional[StateSnapshot]:
        """Latest state for a contact, or None when absent or unreadable."""
        return self.read(contact_id).unwrap_or(None)

    def write(
        self,
        contact_id: str,
        tag: StateTag,
        *,
        now: Optional[datetime] = None,
        if_updated_at=NO_GUARD,
    ) -> WriteOutcome:
        """Upsert the contact's tag.

        `if_updated_at=None` requires that no record exists; a datetime requires
        the stored record to still carry that timestamp.
        """
        now = as_utc(now) or _utcnow()
        db = self._session_factory()
        try:
            row = (
                db.query(ContactState)
                .filter(ContactState.contact_id == contact_id)
                .with_for_update()
                .first()
            )
            current = as_utc(row.updated_at) if row is not None else None

            if if_updated_at is not NO_GUARD and current != as_utc(if_updated_at):
                db.rollback()
                logger.warning(
                    "Contact state changed concurrently",
                    extra={"context": {"contact_id": contact_id, "expected": if_updated_at, "found": current}},
                )
                return WriteOutcome.CONFLICT

            if row is None:
                db.add(ContactState(contact_id=contact_id, tag=tag.encode(), updated_at=now))
            else:
                row.tag = tag.encode()
                row.updated_at = now if now > current else current + timedelta(microseconds=1)
            db.commit()
            logger.info(f"Contact state updated: {contact_id} -> {tag.encode()}")
            return WriteOutcome.OK
        except IntegrityError:
            db.rollback()
            logger.warning("Contact state inserted concurrently", extra={"context": {"contact_id": contact_id}})
            return WriteOutcome.CONFLICT
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Contact state write failed", extra={"context": {"contact_id": contact_id, "error": str(e)}})
            return WriteOutcome.ERROR
        finally:
            db.close()

    def delete(self, contact_id: str, *, if_updated_at=NO_GUARD) -> WriteOutcome:
        db = self._session_factory()
        try:
            query = db.query(ContactState).filter(ContactState.contact_id == contact_id)
            row = query.with_for_update().first()
            if row is None:
                return WriteOutcome.OK
            if if_updated_at is not NO_GUARD and as_utc(row.updated_at) != as_utc(if_updated_at):
                db.rollback()
                return WriteOutcome.CONFLICT
            db.delete(row)
            db.commit()
            logger.info(f"Contact {contact_id} removed after inactivity")
            return WriteOutcome.OK
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Contact state delete failed", extra={"context": {"contact_id": contact_id, "error": str(e)}})
            return WriteOutcome.ERROR
        finally:
            db.close()

    def log_unrecognized(self, contact_id: str, body: str, *, now: Optional[datetime] = None) -> bool:
        db = self._session_factory()
        try:
            db.add(UnrecognizedMessage(contact_id=contact_id, body=body, received_at=as_utc(now) or _utcnow()))
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                "Failed to record unrecognized message",
                extra={"context": {"contact_id": contact_id, "error": str(e)}},
            )
            return False
        finally:
            db.close()
