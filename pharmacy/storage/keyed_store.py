"""Stockage clé/valeur des collections : fichiers JSON locaux, S3 ou mémoire.

Chaque clé contient une collection complète, relue et réécrite en entier.
Une lecture en échec (backend indisponible, JSON corrompu) est journalisée et
la collection retombe sur sa valeur par défaut.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from pharmacy.config import Settings
from pharmacy.storage import codec

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StoreError(Exception):
    """Erreur d'accès au backend de stockage."""
    pass


class KeyedStore(ABC):
    """Stockage de valeurs JSON nommées."""

    @abstractmethod
    def read_text(self, key: str) -> Optional[str]:
        """Retourne le texte stocké sous la clé, ou None si la clé est absente."""
        ...

    @abstractmethod
    def write_text(self, key: str, text: str) -> None:
        ...

    def load(self, key: str, default: Any = None) -> Any:
        try:
            text = self.read_text(key)
        except StoreError as e:
            logger.error("Erreur de lecture pour la clé \"%s\": %s", key, e)
            return default

        if text is None:
            return default

        try:
            return codec.loads(text)
        except ValueError as e:
            logger.error("Données corrompues pour la clé \"%s\": %s", key, e)
            return default

    def save(self, key: str, value: Any) -> bool:
        try:
            self.write_text(key, codec.dumps(value))
            return True
        except (StoreError, TypeError) as e:
            logger.error("Erreur d'écriture pour la clé \"%s\": %s", key, e)
            return False


class InMemoryStore(KeyedStore):
    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def read_text(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write_text(self, key: str, text: str) -> None:
        self._data[key] = text

    def keys(self) -> list[str]:
        return list(self._data)


class LocalFileStore(KeyedStore):
    """Un fichier ``<clé>.json`` par collection dans un répertoire local."""

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StoreError(f"Clé invalide: {key!r}")
        return self.directory / f"{key}.json"

    def read_text(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as e:
            raise StoreError(str(e)) from e

    def write_text(self, key: str, text: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        except OSError as e:
            raise StoreError(str(e)) from e

        # Écriture dans un fichier temporaire puis remplacement
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except (OSError, UnicodeError) as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(str(e)) from e


class S3Store(KeyedStore):
    """Collections stockées sous ``s3://<bucket>/<prefix><clé>.json``."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region_name: str = "us-east-1",
        s3_client: Optional[Any] = None,
    ) -> None:
        if not bucket:
            raise ValueError("Le nom du bucket S3 est obligatoire")
        self.bucket = bucket
        self.prefix = prefix
        self.s3 = s3_client or boto3.client("s3", region_name=region_name)

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{key}.json"

    def read_text(self, key: str) -> Optional[str]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self._object_key(key))
            return response["Body"].read().decode("utf-8")
        except UnicodeError as e:
            raise StoreError(f"Objet S3 illisible: {e}") from e
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                return None
            raise StoreError(str(e)) from e
        except BotoCoreError as e:
            raise StoreError(str(e)) from e

    def write_text(self, key: str, text: str) -> None:
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self._object_key(key),
                Body=text.encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(str(e)) from e


def create_store(settings: Settings) -> KeyedStore:
    """Instancie le backend choisi dans la configuration."""
    backend = settings.store_backend
    if backend == "local":
        return LocalFileStore(settings.data_dir)
    if backend == "s3":
        return S3Store(settings.s3_bucket, settings.s3_prefix, region_name=settings.region_name)
    if backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Backend de stockage inconnu: {backend}")
