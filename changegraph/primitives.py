"""
Common primitives used across the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ulid import ULID

from .config import get_settings
from .enums import ActorKind


def generate_ulid() -> str:
    """Generate a ULID for object IDs.

    ULIDs are lexicographically sortable and globally unique.
    """
    return str(ULID())


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TenantContext:
    """Who is calling, and on behalf of which tenant.

    Supplied by the transport layer after tenant-header resolution; every
    storage query and every write is scoped to ``tenant_id``.
    """

    tenant_id: str
    user_id: Optional[str] = None
    agent_id: Optional[str] = None

    @property
    def actor_kind(self) -> ActorKind:
        if self.agent_id:
            return ActorKind.AGENT
        if self.user_id:
            return ActorKind.USER
        return ActorKind.SYSTEM

    @property
    def actor_id(self) -> str:
        """Agent, else user, else the configured default actor."""
        return self.agent_id or self.user_id or get_settings().default_actor_id
