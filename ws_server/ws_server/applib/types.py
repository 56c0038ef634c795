from enum import Enum


class Role(Enum):
    SOURCE = 'source'
    FOLLOWER = 'follower'

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Accept the canonical names plus the tracker/tracked aliases."""
        normalized = value.strip().lower()
        return cls(_ROLE_ALIASES.get(normalized, normalized))


_ROLE_ALIASES = {
    'tracker': 'source',
    'tracked': 'follower',
}


class ConnectionState(Enum):
    UNBOUND = 'unbound'
    BOUND = 'bound'
    DISCONNECTED = 'disconnected'


class RejectReason(Enum):
    ROLE_TAKEN = 'role_taken'
    ROLE_LOCKED = 'role_locked'
    INVALID_SESSION_ID = 'invalid_session_id'


class PublishRejection(Enum):
    NOT_SOURCE = 'not_source'
    SESSION_GONE = 'session_gone'
