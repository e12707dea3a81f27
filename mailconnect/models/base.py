# mailconnect/models/base.py

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Mongo hands back naive datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Document(BaseModel):
    """A persisted row. `id` is the string form of the store's `_id`."""

    model_config = ConfigDict(extra="ignore")

    id: str

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return as_utc(value)
        return value

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]):
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return cls(**data)
