"""Storage backends for lazytree documents.

This module provides:
- StorageBackend: the Protocol every backend implements
- InMemoryStorage: dict-backed documents
- FileStorage: JSON/YAML files named after their variant
"""

from lazytree.storage.adapter import (
    StorageBackend,
    StorageError,
    StorageNotFoundError,
    VariantNotAllowedError,
)
from lazytree.storage.file import FileStorage, read_document, write_document
from lazytree.storage.memory import InMemoryStorage

__all__ = [
    "FileStorage",
    "InMemoryStorage",
    "StorageBackend",
    "StorageError",
    "StorageNotFoundError",
    "VariantNotAllowedError",
    "read_document",
    "write_document",
]
