from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as stored by BSON) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ArtifactRecord:
    """Maps a public code to the blob holding its bytes."""
    code: str
    storage_name: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(cls, code: str, storage_name: str, created_at: datetime, ttl: timedelta) -> "ArtifactRecord":
        created_at = as_utc(created_at)
        return cls(
            code=code,
            storage_name=storage_name,
            created_at=created_at,
            expires_at=created_at + ttl,
        )

    def is_expired(self, now: datetime) -> bool:
        # Absolute deadline from creation, never extended by access.
        return as_utc(now) >= self.expires_at

    def to_document(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "storage_name": self.storage_name,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ArtifactRecord":
        return cls(
            code=doc["code"],
            storage_name=doc["storage_name"],
            created_at=as_utc(doc["created_at"]),
            expires_at=as_utc(doc["expires_at"]),
        )
