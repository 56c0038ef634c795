"""
In-memory session registry.

WHY:
- All connections for a session land on the same instance (sticky sessions), so
  per-process memory is the source of truth for role bindings and the last view.
- The registry is an explicit object created once in ``RealtimeConfig.ready()``
  and injected into each consumer, instead of module-level dictionaries.

Design:
- One ``SessionRecord`` per session_id, each guarded by its own ``asyncio.Lock``.
  Cross-session operations never take more than one lock at a time.
- A connection_id -> (session_id, role) index lets a connection be found on
  disconnect without scanning every session.
- Empty sessions are reaped by a cancellable background task after a grace period.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from ws_server.applib.models.api import Presence, ViewState
from ws_server.applib.types import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Binding:
    connection_id: str
    channel_name: str
    participant_token: str


@dataclass(frozen=True)
class Membership:
    session_id: str
    role: Role


class SessionRecord:
    """Role slots and last view for one session. Mutate only while holding ``lock``."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.lock = asyncio.Lock()
        self.last_view: Optional[ViewState] = None
        self._slots: Dict[Role, Optional[Binding]] = {Role.SOURCE: None, Role.FOLLOWER: None}
        self._reaper: Optional[asyncio.Task] = None

    def holder(self, role: Role) -> Optional[Binding]:
        return self._slots[role]

    def role_of(self, connection_id: str) -> Optional[Role]:
        for role, binding in self._slots.items():
            if binding is not None and binding.connection_id == connection_id:
                return role
        return None

    def bind(self, role: Role, binding: Binding) -> Optional[Binding]:
        """Put ``binding`` in the role slot and return whatever it replaced."""
        previous = self._slots[role]
        self._slots[role] = binding
        return previous

    def unbind(self, role: Role, connection_id: str) -> Optional[Binding]:
        current = self._slots[role]
        if current is None or current.connection_id != connection_id:
            return None
        self._slots[role] = None
        return current

    def members(self) -> List[Binding]:
        return [b for b in self._slots.values() if b is not None]

    def presence(self) -> Presence:
        return Presence(
            source_connected=self._slots[Role.SOURCE] is not None,
            follower_connected=self._slots[Role.FOLLOWER] is not None,
        )

    @property
    def is_empty(self) -> bool:
        return not self.members()


class SessionRegistry:
    """
    Table of session_id -> SessionRecord.

    Records are created lazily on first join and removed once they have stayed
    empty for ``grace_seconds``.
    """

    def __init__(self, grace_seconds: float = 30.0):
        self.grace_seconds = grace_seconds
        self._sessions: Dict[str, SessionRecord] = {}
        self._memberships: Dict[str, Membership] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> SessionRecord:
        """Return the live record for ``session_id``, creating it if unknown.

        A pending reap is cancelled: a join inside the grace period keeps the
        stored view.
        """
        record = self._sessions.get(session_id)
        if record is None:
            record = SessionRecord(session_id)
            self._sessions[session_id] = record
            logger.info("Session created: %s", session_id)
        else:
            self.cancel_reap(record)
        return record

    def membership(self, connection_id: str) -> Optional[Membership]:
        return self._memberships.get(connection_id)

    def remember(self, connection_id: str, session_id: str, role: Role) -> None:
        self._memberships[connection_id] = Membership(session_id=session_id, role=role)

    def forget(self, connection_id: str) -> Optional[Membership]:
        return self._memberships.pop(connection_id, None)

    def schedule_reap(self, record: SessionRecord) -> None:
        """Delete ``record`` after the grace period if it is still empty then."""
        self.cancel_reap(record)
        record._reaper = asyncio.create_task(self._reap_later(record))

    async def _reap_later(self, record: SessionRecord) -> None:
        try:
            await asyncio.sleep(self.grace_seconds)
        except asyncio.CancelledError:
            return
        async with record.lock:
            record._reaper = None
            if not record.is_empty:
                return
            if self._sessions.get(record.session_id) is record:
                del self._sessions[record.session_id]
                logger.info("Session reaped after %.1fs empty: %s", self.grace_seconds, record.session_id)

    @staticmethod
    def cancel_reap(record: SessionRecord) -> None:
        if record._reaper is not None and not record._reaper.done():
            record._reaper.cancel()
        record._reaper = None

    async def close(self) -> None:
        """Cancel all pending reaps (for shutdown and tests)."""
        tasks = []
        for record in self._sessions.values():
            if record._reaper is not None and not record._reaper.done():
                record._reaper.cancel()
                tasks.append(record._reaper)
            record._reaper = None
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
