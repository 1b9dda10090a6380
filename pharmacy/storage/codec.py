"""Encodage JSON des collections persistées.

Les horodatages sont écrits au format ISO-8601 UTC strict
(``YYYY-MM-DDTHH:MM:SS.sssZ``) et toute chaîne respectant ce format est
reconvertie en ``datetime`` UTC à la lecture. Les enums sont écrits par leur
valeur, les dataclasses comme des objets JSON.
"""

from __future__ import annotations

import dataclasses
import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Type, TypeVar

T = TypeVar("T")

ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z$")


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    fmt = "%Y-%m-%dT%H:%M:%S.%fZ" if "." in text else "%Y-%m-%dT%H:%M:%SZ"
    return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)


def _default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return format_timestamp(obj)
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    raise TypeError(f"Type non sérialisable: {type(obj).__name__}")


def _revive(value: Any) -> Any:
    if isinstance(value, str) and ISO_TIMESTAMP.match(value):
        return parse_timestamp(value)
    if isinstance(value, list):
        return [_revive(v) for v in value]
    return value


def _revive_object(obj: dict) -> dict:
    return {key: _revive(value) for key, value in obj.items()}


def dumps(value: Any) -> str:
    return json.dumps(value, default=_default, ensure_ascii=False, indent=2)


def loads(text: str) -> Any:
    """Décode le JSON en réhydratant les horodatages ISO-8601 UTC."""
    return _revive(json.loads(text, object_hook=_revive_object))


def to_plain(value: Any) -> Any:
    """Convertit une valeur en structure JSON pure (dict/list/str/nombres)."""
    return json.loads(json.dumps(value, default=_default))


def from_record(record_type: Type[T], data: dict) -> T:
    """Construit une dataclass à partir d'un dict, en ignorant les clés inconnues."""
    if not isinstance(data, dict):
        raise TypeError(f"Enregistrement invalide pour {record_type.__name__}: {data!r}")
    names = {f.name for f in dataclasses.fields(record_type)}
    return record_type(**{k: v for k, v in data.items() if k in names})
