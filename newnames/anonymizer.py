"""Replacement of configured column values with fake data."""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from typing import Any

from newnames.config import Config
from newnames.schema import TableSchema

_DEFAULT_MAX_LENGTH = 255
_SENTENCE_THRESHOLD = 50
_FLOAT_TYPES = ("float", "double", "real", "numeric", "decimal")

_FIRST_NAMES = (
    "Alice", "Bruno", "Chloe", "Dmitri", "Elena", "Farid", "Grace", "Hugo",
    "Ines", "Jonas", "Keiko", "Liam", "Maya", "Nils", "Olga", "Pablo",
    "Quinn", "Rosa", "Sami", "Tara", "Umar", "Vera", "Wade", "Yara", "Zane",
)
_LAST_NAMES = (
    "Adler", "Baker", "Castro", "Dunn", "Ellis", "Fischer", "Garcia", "Hale",
    "Ivanov", "Jensen", "Kowalski", "Lopez", "Moreau", "Novak", "Olsen",
    "Park", "Quist", "Rossi", "Silva", "Tanaka", "Ueda", "Varga", "Weber",
)
_WORDS = (
    "amber", "bridge", "candle", "delta", "ember", "forest", "garden",
    "harbor", "island", "jungle", "kettle", "lantern", "meadow", "north",
    "orbit", "pebble", "quiet", "river", "stone", "timber", "upland",
    "valley", "willow", "yonder", "zephyr",
)
_DOMAINS = ("example.com", "example.org", "example.net")

_rng = random.Random()


@dataclass
class Row:
    """A single row of data together with the schema of its table."""

    schema: TableSchema
    data: dict[str, Any] = field(default_factory=dict)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0
    return False


def _fake_name() -> str:
    return f"{_rng.choice(_FIRST_NAMES)} {_rng.choice(_LAST_NAMES)}"


def _fake_email() -> str:
    first = _rng.choice(_FIRST_NAMES).lower()
    last = _rng.choice(_LAST_NAMES).lower()
    return f"{first}{last}{_rng.randint(0, 999)}@{_rng.choice(_DOMAINS)}"


def _fake_phone() -> str:
    return "".join(_rng.choice(string.digits) for _ in range(10))


def _fake_sentence(word_count: int) -> str:
    words = [_rng.choice(_WORDS) for _ in range(word_count)]
    return " ".join(words).capitalize() + "."


def _fake_letters(length: int) -> str:
    return "".join(_rng.choice(string.ascii_letters) for _ in range(length))


def _fake_value(column_name: str, column_type: str, max_length: int) -> Any:
    col_type = column_type.lower()
    name = column_name.lower()
    if "int" in col_type:
        return _rng.randint(-(2**63), 2**63 - 1)
    if any(kind in col_type for kind in _FLOAT_TYPES):
        return _rng.uniform(-1e6, 1e6)
    if "email" in name:
        return _fake_email()
    if "phone" in name:
        return _fake_phone()
    if "name" in name:
        return _fake_name()
    if max_length >= _SENTENCE_THRESHOLD:
        return _fake_sentence(5)
    return _fake_letters(max_length)


def anonymize(row: Row, cfg: Config) -> None:
    """Replace the configured columns of ``row`` with fake values in place.

    Null, blank and numerically zero values are left as they are.
    """
    fields = cfg.anonymize_fields.get(row.schema.name)
    if fields is None:
        return
    wanted = set(fields)

    for column in row.schema.columns:
        if column.name not in wanted:
            continue
        if _is_empty(row.data.get(column.name)):
            continue
        max_length = column.max_length or _DEFAULT_MAX_LENGTH
        fake = _fake_value(column.name, column.type, max_length)
        if isinstance(fake, str):
            fake = fake[:max_length]
        row.data[column.name] = fake