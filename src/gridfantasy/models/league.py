from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from .base import Document


class LeagueMember(Document):
    display_name: str = ""
    total_points: int = 0
    rank: Optional[int] = None


class League(Document):
    name: str = ""
    settings: Dict[str, Any] = Field(default_factory=dict)

    @property
    def lock_deadline(self) -> str:
        return str(self.settings.get("lockDeadline") or "qualifying")
