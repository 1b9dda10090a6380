"""Dépôt en mémoire d'une collection persistée sous une clé du stockage."""

from __future__ import annotations

import copy
import logging
from typing import Callable, Generic, Iterable, Iterator, Optional, Type, TypeVar

from pharmacy.storage import codec
from pharmacy.storage.keyed_store import KeyedStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository(Generic[T]):
    """Collection d'enregistrements identifiés par leur attribut ``id``.

    La collection est chargée une fois à la construction puis réécrite en
    entier après chaque mutation.
    """

    def __init__(
        self,
        store: KeyedStore,
        key: str,
        record_type: Type[T],
        default: Iterable[T] = (),
    ) -> None:
        self.store = store
        self.key = key
        self.record_type = record_type
        self._records: list[T] = self._load(list(default))

    def _load(self, default: list[T]) -> list[T]:
        raw = self.store.load(self.key)
        if raw is None:
            return copy.deepcopy(default)
        try:
            if not isinstance(raw, list):
                raise TypeError(f"liste attendue, reçu {type(raw).__name__}")
            return [codec.from_record(self.record_type, r) for r in raw]
        except (TypeError, ValueError) as e:
            logger.error("Collection \"%s\" illisible, valeur par défaut utilisée: %s", self.key, e)
            return copy.deepcopy(default)

    def persist(self) -> bool:
        return self.store.save(self.key, self._records)

    def all(self) -> list[T]:
        return list(self._records)

    def get(self, record_id: str) -> Optional[T]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        for record in self._records:
            if predicate(record):
                return record
        return None

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [r for r in self._records if predicate(r)]

    def add(self, record: T) -> T:
        self._records.append(record)
        self.persist()
        return record

    def replace(self, record: T) -> bool:
        for i, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[i] = record
                self.persist()
                return True
        return False

    def remove(self, record_id: str) -> bool:
        return self.remove_where(lambda r: r.id == record_id) > 0

    def remove_where(self, predicate: Callable[[T], bool]) -> int:
        before = len(self._records)
        self._records = [r for r in self._records if not predicate(r)]
        removed = before - len(self._records)
        if removed:
            self.persist()
        return removed

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
