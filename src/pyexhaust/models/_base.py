"""Base model and timestamp helpers shared by pyexhaust models.

Every persisted or API-facing model inherits from :class:`ExhaustBaseModel`
which provides:

* ``alias_generator=to_camel`` so the JSON document uses camelCase keys
  (``moduleId``, ``expiresAt``) while Python code uses snake_case.
* ``populate_by_name=True`` so models can be built from either form.
* Frozen instances; the state store replaces entries instead of
  mutating them in place.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce an epoch number (seconds **or** milliseconds) or ISO string to a UTC datetime.

    Returns ``None`` when the value is ``None``. Naive datetimes are assumed
    to be UTC.
    """
    if value is None:
        return value
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return value


UtcTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epoch numbers and ISO strings to aware UTC datetimes."""


class ExhaustBaseModel(BaseModel):
    """Base for pyexhaust models with camelCase wire names."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
