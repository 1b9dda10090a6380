from pharmacy.storage.keyed_store import (
    InMemoryStore,
    KeyedStore,
    LocalFileStore,
    S3Store,
    StoreError,
    create_store,
)
from pharmacy.storage.repository import Repository

__all__ = [
    "InMemoryStore",
    "KeyedStore",
    "LocalFileStore",
    "Repository",
    "S3Store",
    "StoreError",
    "create_store",
]
