"""Mise en forme des exports CSV et JSON."""

from __future__ import annotations

import csv
import json
import logging
import os
from io import StringIO
from pathlib import Path
from typing import Any, Iterable, Sequence

from pharmacy.storage import codec

logger = logging.getLogger(__name__)


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """CSV avec tous les champs entre guillemets doubles, une ligne par enregistrement."""
    buffer = StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def to_json(document: Any) -> str:
    return json.dumps(codec.to_plain(document), indent=2, ensure_ascii=False)


def write_export(content: str, path: str | os.PathLike) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    logger.info("Export écrit: %s (%d octets)", target, len(content.encode("utf-8")))
    return target
