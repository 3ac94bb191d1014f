from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from .db import Database
from .errors import InvalidStateError, NotFoundError, PersistenceError, ValidationError
from .models import ACTIVE, COMPLETED, PAUSED, WorkSession


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkSessionTracker:
    """Lifecycle of timed work sessions: active <-> paused -> completed."""

    def __init__(
        self,
        db: Database,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def start(
        self,
        user_id: str,
        *,
        activity: str | None = None,
        location: str | None = None,
        project_id: int | None = None,
        started_at_utc: datetime | None = None,
    ) -> WorkSession:
        existing = self.db.get_open_session(user_id)
        if existing is not None:
            self.logger.debug("Ignoring duplicate start for user %s (session %s)", user_id, existing.id)
            return existing

        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        started = started_at_utc or self.clock()
        session = self.db.insert_session(
            user_id,
            user.name,
            started,
            activity=activity,
            location=location,
            project_id=project_id,
        )
        if session is None:
            # A concurrent start won the open-session index; hand back its row.
            existing = self.db.get_open_session(user_id)
            if existing is None:
                raise PersistenceError(f"Could not open a session for user {user_id}")
            return existing

        self.logger.info("Session started: user=%s session=%s", user_id, session.id)
        return session

    def pause(self, session_id: int, user_id: str, at_utc: datetime | None = None) -> WorkSession:
        return self._transition(session_id, user_id, ACTIVE, PAUSED, at_utc)

    def resume(self, session_id: int, user_id: str, at_utc: datetime | None = None) -> WorkSession:
        return self._transition(session_id, user_id, PAUSED, ACTIVE, at_utc)

    def stop(self, session_id: int, user_id: str, ended_at_utc: datetime | None = None) -> WorkSession:
        session = self._owned(session_id, user_id)
        if session.status == COMPLETED:
            raise InvalidStateError(f"Session {session_id} is already completed")

        if ended_at_utc is not None and ended_at_utc.tzinfo is None:
            raise ValueError("ended_at_utc must be timezone-aware")
        ended = (ended_at_utc or self.clock()).astimezone(timezone.utc).replace(microsecond=0)
        duration = int((ended - session.started_at_utc).total_seconds())
        if duration < 0:
            raise ValidationError("Session cannot end before it started")

        if not self.db.complete_session(session_id, ended, duration):
            raise InvalidStateError(f"Session {session_id} is already completed")

        self.logger.info("Session ended: user=%s session=%s tracked=%ss", user_id, session_id, duration)
        return self.db.get_session(session_id)

    def get(self, session_id: int, user_id: str) -> WorkSession:
        return self._owned(session_id, user_id)

    def active_for(self, user_id: str) -> WorkSession | None:
        return self.db.get_open_session(user_id)

    def list_for_user(self, user_id: str) -> list[WorkSession]:
        return self.db.list_sessions(user_id)

    def _owned(self, session_id: int, user_id: str) -> WorkSession:
        session = self.db.get_session(session_id)
        # Someone else's session is reported exactly like a missing one.
        if session is None or session.user_id != user_id:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def _transition(
        self,
        session_id: int,
        user_id: str,
        from_status: str,
        to_status: str,
        at_utc: datetime | None,
    ) -> WorkSession:
        session = self._owned(session_id, user_id)
        if session.status != from_status:
            raise InvalidStateError(
                f"Session {session_id} is {session.status}; expected {from_status}"
            )

        if not self.db.transition_session(session_id, from_status, to_status, at_utc or self.clock()):
            raise InvalidStateError(f"Session {session_id} changed state concurrently")

        self.logger.info("Session %s: user=%s session=%s", to_status, user_id, session_id)
        return self.db.get_session(session_id)
