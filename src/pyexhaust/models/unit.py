"""Unit identifiers: tower, final digit, relay and module mapping."""

from __future__ import annotations

import enum
import re

from pyexhaust.exceptions import UnitIdParseError
from pyexhaust.models._base import ExhaustBaseModel

_UNIT_ID_RE = re.compile(r"^([ABC])_?([1-8])$")
_WHITESPACE_RE = re.compile(r"\s+")
_LAST_DIGIT_RE = re.compile(r"(\d)\D*$")


class Tower(enum.StrEnum):
    """Physical building sections."""

    A = "A"
    B = "B"
    C = "C"


class Group(enum.StrEnum):
    """Final-digit groups; each has its own relay and power-cut module."""

    LOW = "14"
    HIGH = "58"


class UnitId(ExhaustBaseModel):
    """Parsed unit identity.

    ``final <= 4`` maps to group ``14`` with ``relay == final``;
    ``final > 4`` maps to group ``58`` with ``relay == final - 4``.
    """

    id: str
    tower: Tower
    final: int
    group: Group
    relay: int
    module_id: str


def normalize_unit_id(raw_id: str) -> str:
    """Trim, upper-case, drop whitespace and turn ``-`` into ``_``."""
    return _WHITESPACE_RE.sub("", str(raw_id).strip().upper()).replace("-", "_")


def parse_unit_id(raw_id: str) -> UnitId:
    """Parse ``A1``, ``A-1`` or ``A_1`` style identifiers.

    The canonical ``id`` is always the compact form (``A1``), so every
    accepted spelling maps to the same state key.

    Raises :class:`UnitIdParseError` for any other shape.
    """
    if not isinstance(raw_id, str):
        raise UnitIdParseError(f"Unit id must be a string, got {type(raw_id).__name__}", raw_id=str(raw_id))
    normalized = normalize_unit_id(raw_id)
    match = _UNIT_ID_RE.match(normalized)
    if match is None:
        raise UnitIdParseError(
            f"Invalid unit id {raw_id!r}: use A1, A-1 or A_1 (tower A/B/C, final 1-8)",
            raw_id=raw_id,
        )

    tower = Tower(match.group(1))
    final = int(match.group(2))
    group = Group.LOW if final <= 4 else Group.HIGH
    relay = final if final <= 4 else final - 4
    return UnitId(
        id=f"{tower}{final}",
        tower=tower,
        final=final,
        group=group,
        relay=relay,
        module_id=f"{tower}_{group}",
    )


def unit_id_from_apartment(tower: str, apartment: str | int) -> str:
    """Build a unit id from a tower letter and an apartment number.

    Only the apartment's last digit matters (``"B", 1204`` -> ``"B4"``).
    The result is validated with :func:`parse_unit_id`.
    """
    tower_part = str(tower).strip().upper()
    apartment_part = str(apartment).strip()
    match = _LAST_DIGIT_RE.search(apartment_part)
    if not tower_part or match is None:
        raise UnitIdParseError(
            f"Cannot derive unit id from tower={tower!r} apartment={apartment!r}",
            raw_id=f"{tower_part}{apartment_part}",
        )
    return parse_unit_id(f"{tower_part}{match.group(1)}").id
