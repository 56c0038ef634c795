"""
Role arbitration: at most one source and one follower per session.

A connection is bound to one role for its whole lifetime. It may move to a
different session with the same role (it is removed from the old one once the
new bind succeeds), but asking for a different role is refused; that needs a
new connection.

A join that presents the participant token of the connection currently holding
the role takes the role over. This is how a client whose old socket has not
been noticed as dead yet reclaims its slot after a reconnect.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from ws_server.applib.models.api import JoinOkEvent, Presence, RoleRevokedEvent, ViewState
from ws_server.applib.types import RejectReason, Role

from .broadcaster import StateBroadcaster
from .presence import PresenceNotifier
from .registry import Binding, Membership, SessionRegistry

logger = logging.getLogger(__name__)


def issue_participant_token() -> str:
    return secrets.token_urlsafe(16)


@dataclass(frozen=True)
class BindResult:
    session_id: str
    role: Role
    binding: Optional[Binding] = None
    presence: Optional[Presence] = None
    last_view: Optional[ViewState] = None
    rejection: Optional[RejectReason] = None
    replaced: Optional[Binding] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None


class RoleArbiter:
    def __init__(
        self,
        registry: SessionRegistry,
        notifier: PresenceNotifier,
        broadcaster: StateBroadcaster,
    ):
        self.registry = registry
        self.notifier = notifier
        self.broadcaster = broadcaster
        self.outbox = notifier.outbox

    async def try_bind(
        self,
        session_id: str,
        role: Role,
        connection_id: str,
        channel_name: str,
        participant_token: Optional[str] = None,
    ) -> BindResult:
        """Bind ``connection_id`` to ``role`` in ``session_id`` or explain why not.

        On success the joiner gets ``join_ok``, every member gets ``presence`` and a
        follower gets the stored view, all queued before the session lock is released.
        """
        current = self.registry.membership(connection_id)
        if current is not None and current.role != role:
            logger.info(
                "Join refused: %s already bound as %s, asked for %s",
                connection_id, current.role.value, role.value,
            )
            return BindResult(session_id=session_id, role=role, rejection=RejectReason.ROLE_LOCKED)
        moved_from = current if current is not None and current.session_id != session_id else None

        record = self.registry.get_or_create(session_id)
        async with record.lock:
            holder = record.holder(role)
            replaced: Optional[Binding] = None
            if holder is not None and holder.connection_id == connection_id:
                binding = holder
            else:
                if holder is not None:
                    if not participant_token or not secrets.compare_digest(participant_token, holder.participant_token):
                        logger.info("Join refused: %s role taken in session %s", role.value, session_id)
                        return BindResult(session_id=session_id, role=role, rejection=RejectReason.ROLE_TAKEN)
                    replaced = holder
                binding = Binding(
                    connection_id=connection_id,
                    channel_name=channel_name,
                    participant_token=replaced.participant_token if replaced else issue_participant_token(),
                )
                record.bind(role, binding)

            if replaced is not None:
                self.registry.forget(replaced.connection_id)
                await self.outbox.revoke(replaced.channel_name, RoleRevokedEvent().model_dump(mode="json"))
                logger.info(
                    "Session %s: %s role taken over by %s from %s",
                    session_id, role.value, connection_id, replaced.connection_id,
                )
            self.registry.remember(connection_id, session_id, role)
            self.registry.cancel_reap(record)

            presence = record.presence()
            join_ok = JoinOkEvent(
                role=role,
                session_id=session_id,
                presence=presence,
                participant_token=binding.participant_token,
                last_view=record.last_view,
            )
            await self.outbox.send(channel_name, join_ok.model_dump(mode="json", exclude_none=True))
            await self.notifier.broadcast(record)
            if role is Role.FOLLOWER:
                await self.broadcaster.deliver_initial(record, binding)
            last_view = record.last_view

        logger.info("Session %s: %s bound to %s", session_id, role.value, connection_id)
        if moved_from is not None:
            await self._release_membership(moved_from, connection_id, disconnected=False)
        return BindResult(
            session_id=session_id,
            role=role,
            binding=binding,
            presence=presence,
            last_view=last_view,
            replaced=replaced,
        )

    async def release(self, connection_id: str, disconnected: bool = True) -> Optional[Presence]:
        """Remove ``connection_id`` from its session slot.

        ``disconnected`` marks a transport loss; losing the source that way also sends
        ``source_lost`` to the follower. Returns the new presence, or None when the
        connection was not bound anywhere.
        """
        membership = self.registry.forget(connection_id)
        if membership is None:
            return None
        return await self._release_membership(membership, connection_id, disconnected)

    async def _release_membership(
        self, membership: Membership, connection_id: str, disconnected: bool
    ) -> Optional[Presence]:
        record = self.registry.get(membership.session_id)
        if record is None:
            return None

        async with record.lock:
            if record.unbind(membership.role, connection_id) is None:
                return None
            if disconnected and membership.role is Role.SOURCE:
                await self.notifier.source_lost(record)
            presence = await self.notifier.broadcast(record)
            if record.is_empty:
                self.registry.schedule_reap(record)

        logger.info(
            "Session %s: %s released by %s (%s)",
            membership.session_id,
            membership.role.value,
            connection_id,
            "disconnect" if disconnected else "moved",
        )
        return presence
