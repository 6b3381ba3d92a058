"""Static language table keyed by file extension."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

import yaml

from runner_core.schemas import LanguageConfig

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES_PATH = Path(__file__).with_name("languages.yaml")


def extension_of(filename: str) -> str:
    """Return the lower-cased extension of ``filename`` without the dot."""
    base = filename.rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[-1].lower()


def parse_language_table(data: Mapping[str, object]) -> dict[str, LanguageConfig]:
    table: dict[str, LanguageConfig] = {}
    for extension, entry in data.items():
        if not isinstance(entry, Mapping):
            raise ValueError(f"Language entry for '{extension}' must be a mapping")
        payload = dict(entry)
        payload["extension"] = str(extension).lower()
        for key in ("runtime_id", "runtime_version"):
            if payload.get(key) is not None:
                payload[key] = str(payload[key])
        table[payload["extension"]] = LanguageConfig.from_dict(payload)
    return table


@lru_cache(maxsize=None)
def load_language_table(yaml_path: str | None = None) -> Mapping[str, LanguageConfig]:
    """Load the language table once per path; the result is read-only."""
    path = Path(yaml_path) if yaml_path else DEFAULT_LANGUAGES_PATH
    if not path.exists():
        raise FileNotFoundError(f"Language table not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, Mapping):
        raise ValueError(f"Invalid language table: {path}")

    table = parse_language_table(data)
    logger.debug("Loaded %d language entries from %s", len(table), path)
    return MappingProxyType(table)


def get_language(extension: str, yaml_path: str | None = None) -> LanguageConfig | None:
    return load_language_table(yaml_path).get(extension.lower())
