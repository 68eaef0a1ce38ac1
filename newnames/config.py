"""Run configuration and loading of the YAML anonymisation rules."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import yaml


@dataclass
class Config:
    """Settings for one anonymisation run."""

    source_url: str = ""
    destination_url: str = ""
    config_file: str = "new_name.conf"
    debug: bool = False
    verbose: bool = False
    worker_count: int = 4
    anonymize_fields: dict[str, list[str]] = field(default_factory=dict)
    skip_tables: list[str] = field(default_factory=list)
    sample_tables: dict[str, float] = field(default_factory=dict)

    def load_file(self, filename: str) -> None:
        """Read the YAML rules file and fill in the table settings.

        Raises OSError when the file cannot be read and ValueError when it
        does not hold a valid configuration.
        """
        try:
            with open(filename, encoding="utf-8") as handle:
                text = handle.read()
        except OSError as exc:
            raise OSError(f"failed to read config file: {exc}") from exc

        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"failed to parse yaml config: {exc}") from exc

        if document is None:
            document = {}
        if not isinstance(document, Mapping):
            raise ValueError("failed to parse yaml config: top level must be a mapping")

        self.anonymize_fields = _parse_anonymize(document.get("anonymize"))
        self.skip_tables = _parse_skip(document.get("skip"))
        self.sample_tables = _parse_sample(document.get("sample"))


def _parse_anonymize(section: object) -> dict[str, list[str]]:
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ValueError("failed to parse yaml config: 'anonymize' must be a mapping")
    fields: dict[str, list[str]] = {}
    for table, csv_fields in section.items():
        text = "" if csv_fields is None else str(csv_fields)
        fields[str(table)] = [name.strip() for name in text.split(",") if name.strip()]
    return fields


def _parse_skip(section: object) -> list[str]:
    if section is None:
        return []
    if not isinstance(section, list):
        raise ValueError("failed to parse yaml config: 'skip' must be a list")
    return [str(table) for table in section]


def _parse_sample(section: object) -> dict[str, float]:
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ValueError("failed to parse yaml config: 'sample' must be a mapping")
    samples: dict[str, float] = {}
    for table, pct in section.items():
        try:
            samples[str(table)] = float(pct)
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"failed to parse yaml config: sample for {table!r} is not a number"
            ) from exc
    return samples