"""In-memory storage backend, mainly for tests and embedding."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from lazytree.storage.adapter import (
    StorageNotFoundError,
    Subscriber,
    SubscriberSet,
    Unsubscribe,
    check_allowed,
)
from lazytree.variants import VariantCandidate, VariantContext, resolve, serialize_variant_name

logger = logging.getLogger(__name__)


class InMemoryStorage:
    """Documents held in a dict keyed by variant name.

    Documents are deep-copied on the way in and out, so callers never share
    state with the store.

    Example:
        storage = InMemoryStorage({"strings": {...}, "strings:es": {...}})
        doc = await storage.load("strings", {"lang": "es"})
    """

    def __init__(
        self,
        documents: Mapping[str, Mapping[str, Any]] | None = None,
        allowed_variants: Mapping[str, Any] | None = None,
    ):
        self._documents: dict[str, dict[str, Any]] = {
            name: copy.deepcopy(dict(node)) for name, node in (documents or {}).items()
        }
        self.allowed_variants = allowed_variants
        self._subscribers = SubscriberSet()

    async def load(
        self, base_name: str, context: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Best-matching document for ``base_name``.

        Raises:
            StorageNotFoundError: If no stored variant matches
            VariantNotAllowedError: If the context names a disallowed variant
        """
        ctx = VariantContext.coerce(context)
        check_allowed(self.allowed_variants, ctx)

        candidate = resolve(base_name, list(self._documents), ctx)
        if candidate is None:
            raise StorageNotFoundError(base_name, ctx)

        logger.debug("Loaded '%s' for base '%s'", candidate.name, base_name)
        return copy.deepcopy(self._documents[candidate.name])

    async def save(
        self,
        base_name: str,
        node: Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Store ``node`` under the variant name serialized from ``context``."""
        ctx = VariantContext.coerce(context)
        check_allowed(self.allowed_variants, ctx)

        name = serialize_variant_name(base_name, ctx)
        self._documents[name] = copy.deepcopy(dict(node))
        await self._subscribers.notify(base_name, name, copy.deepcopy(self._documents[name]))

    async def list(self, base_name: str | None = None) -> list[str]:
        """Stored variant names, optionally only those of one base name."""
        names = self._documents.keys()
        if base_name is not None:
            names = [n for n in names if VariantCandidate.parse(n).base == base_name]
        return sorted(names)

    def subscribe(self, base_name: str, callback: Subscriber) -> Unsubscribe:
        """Call ``callback(variant_name, document)`` after every save of ``base_name``."""
        return self._subscribers.add(base_name, callback)

    async def delete(self, name: str) -> bool:
        """Remove one stored variant by its full name."""
        return self._documents.pop(name, None) is not None

    def clear(self) -> None:
        self._documents.clear()

    def __len__(self) -> int:
        return len(self._documents)
