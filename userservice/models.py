"""Domain models for the current user service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

DEFAULT_USER_NAME = "maarten"


@dataclass(frozen=True)
class User:
    """Represents the current user record stored in the document store."""

    id: str
    name: Optional[str]
    created_at: Optional[datetime] = None

    @staticmethod
    def from_document(document: Mapping[str, Any]) -> "User":
        return User(
            id=str(document["_id"]),
            name=document.get("name"),
            created_at=document.get("createdAt"),
        )


def seed_document(now: datetime) -> dict:
    """Return the document inserted when the collection is empty."""

    return {"name": DEFAULT_USER_NAME, "createdAt": now}


__all__ = ["DEFAULT_USER_NAME", "User", "seed_document"]
