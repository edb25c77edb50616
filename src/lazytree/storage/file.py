"""File storage backend: one JSON or YAML document per variant.

Files are named after their variant (``strings.json``, ``strings:es.yaml``,
``strings:es:formal.yml``) and live directly under ``base_dir``.
File reads and writes run in a worker thread through asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from lazytree.storage.adapter import (
    StorageError,
    StorageNotFoundError,
    Subscriber,
    SubscriberSet,
    Unsubscribe,
    check_allowed,
)
from lazytree.variants import VariantCandidate, VariantContext, resolve, serialize_variant_name

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".json", ".yaml", ".yml")


def read_document(path: Path, encoding: str = "utf-8") -> dict[str, Any]:
    """Parse a JSON or YAML document file into a mapping.

    Raises:
        StorageError: If the file is malformed or does not hold a mapping
    """
    with open(path, encoding=encoding) as f:
        try:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise StorageError(f"Cannot parse document '{path}': {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise StorageError(f"Document '{path}' must contain an object, got {type(data).__name__}")
    return data


def write_document(path: Path, node: Mapping[str, Any], encoding: str = "utf-8") -> None:
    """Write a mapping as JSON or YAML depending on the file extension."""
    with open(path, "w", encoding=encoding) as f:
        if path.suffix == ".json":
            json.dump(dict(node), f, indent=2, ensure_ascii=False)
            f.write("\n")
        else:
            yaml.safe_dump(dict(node), f, sort_keys=False, allow_unicode=True)


class FileStorage:
    """Variant documents stored as files in one directory.

    Args:
        base_dir: Directory holding the documents (created on first save)
        extension: Extension used when saving (".json", ".yaml" or ".yml")
        allowed_variants: Optional whitelist per dimension, e.g.
            ``{"lang": ["en", "es"]}``; other values are rejected
        cache: Keep parsed documents in memory until clear_cache()
        encoding: Text encoding of the files
    """

    def __init__(
        self,
        base_dir: str | Path,
        extension: str = ".json",
        allowed_variants: Mapping[str, Iterable[str]] | None = None,
        cache: bool = False,
        encoding: str = "utf-8",
    ):
        if extension not in SUPPORTED_EXTENSIONS:
            raise ValueError(
                f"Unsupported extension '{extension}' "
                f"(expected one of {', '.join(SUPPORTED_EXTENSIONS)})"
            )
        self.base_dir = Path(base_dir)
        self.extension = extension
        self.allowed_variants = allowed_variants
        self.encoding = encoding
        self._cache_enabled = cache
        self._cache: dict[Path, dict[str, Any]] = {}
        self._subscribers = SubscriberSet()

    def _documents(self, base_name: str | None = None) -> dict[str, Path]:
        """Variant name -> file, in sorted file order."""
        documents: dict[str, Path] = {}
        if not self.base_dir.is_dir():
            return documents

        for path in sorted(self.base_dir.iterdir()):
            if not path.is_file() or path.suffix not in SUPPORTED_EXTENSIONS:
                continue
            name = path.stem
            if base_name is not None and VariantCandidate.parse(name).base != base_name:
                continue
            if name in documents:
                logger.warning(
                    "Ignoring '%s': '%s' already provides variant '%s'",
                    path.name,
                    documents[name].name,
                    name,
                )
                continue
            documents[name] = path
        return documents

    def _read(self, path: Path) -> dict[str, Any]:
        if self._cache_enabled and path in self._cache:
            return copy.deepcopy(self._cache[path])
        data = read_document(path, self.encoding)
        if self._cache_enabled:
            self._cache[path] = data
            return copy.deepcopy(data)
        return data

    async def load(
        self, base_name: str, context: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Best-matching document file for ``base_name``.

        Raises:
            StorageNotFoundError: If no file variant matches
            VariantNotAllowedError: If the context names a disallowed variant
        """
        ctx = VariantContext.coerce(context)
        check_allowed(self.allowed_variants, ctx)

        documents = self._documents(base_name)
        candidate = resolve(base_name, list(documents), ctx)
        if candidate is None:
            raise StorageNotFoundError(base_name, ctx)

        path = documents[candidate.name]
        logger.debug("Loading '%s' for base '%s'", path, base_name)
        return await asyncio.to_thread(self._read, path)

    async def save(
        self,
        base_name: str,
        node: Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Write ``node`` to the file named after the context's variant."""
        ctx = VariantContext.coerce(context)
        check_allowed(self.allowed_variants, ctx)

        name = serialize_variant_name(base_name, ctx)
        existing = self._documents(base_name).get(name)
        path = existing or self.base_dir / f"{name}{self.extension}"

        self.base_dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(write_document, path, node, self.encoding)
        self._cache.pop(path, None)
        logger.debug("Saved '%s'", path)

        await self._subscribers.notify(base_name, name, copy.deepcopy(dict(node)))

    async def list(self, base_name: str | None = None) -> list[str]:
        """Stored variant names, optionally only those of one base name."""
        return sorted(self._documents(base_name))

    def subscribe(self, base_name: str, callback: Subscriber) -> Unsubscribe:
        """Call ``callback(variant_name, document)`` after every save of ``base_name``."""
        return self._subscribers.add(base_name, callback)

    def clear_cache(self) -> None:
        self._cache.clear()
