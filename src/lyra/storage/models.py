"""Data models for storage layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

TEMP_ID_PREFIX = "tmp-"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Exchange:
    """One user prompt plus its assistant reply.

    ``reply`` is None while the exchange is pending. Provisional exchanges carry a
    ``tmp-`` id and exist only in memory until swapped for the stored record.
    """

    id: str
    owner: str
    prompt: str
    reply: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)
    provisional: bool = False
    failed: bool = False

    @classmethod
    def provisional_for(cls, owner: str, prompt: str) -> Exchange:
        return cls(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4()}",
            owner=owner,
            prompt=prompt,
            provisional=True,
        )

    @property
    def pending(self) -> bool:
        return self.provisional and self.reply is None and not self.failed

    def as_failed(self, reply: str) -> Exchange:
        """Return an error-state copy; the provisional id is kept."""
        return replace(self, reply=reply, failed=True)
