"""StorageBackend Protocol: shared interface for document backends.

A backend stores whole documents under variant names (``strings:es:formal``)
and hands back the best match for a base name and context. Backends know
nothing about directive syntax; LazyTree treats a loaded document as a
fresh tree.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from lazytree.errors import LazyTreeError
from lazytree.variants import VariantContext

logger = logging.getLogger(__name__)

# Subscriber signature: (variant_name, document) -> None | Awaitable[None]
Subscriber = Callable[[str, dict[str, Any]], Any]
Unsubscribe = Callable[[], None]


class StorageError(LazyTreeError):
    """Base class for storage backend errors."""


class StorageNotFoundError(StorageError):
    """No stored document matches a base name under a context."""

    def __init__(self, base_name: str, context: Mapping[str, Any] | None = None):
        self.base_name = base_name
        self.context = VariantContext.coerce(context)
        message = f"No document found for '{base_name}'"
        if self.context:
            message += f" with context {self.context.to_dict()}"
        super().__init__(message)


class VariantNotAllowedError(StorageError):
    """A context value is outside a backend's allowed variants."""

    def __init__(self, dimension: str, value: Any, allowed: Iterable[str]):
        self.dimension = dimension
        self.value = value
        self.allowed = sorted(allowed)
        super().__init__(
            f"Variant {dimension}={value} is not allowed "
            f"(allowed: {', '.join(self.allowed)})"
        )


@runtime_checkable
class StorageBackend(Protocol):
    """Interface all storage backends must implement.

    ``list`` and ``subscribe`` are optional for third-party backends;
    the bundled backends provide both.
    """

    async def load(
        self, base_name: str, context: Mapping[str, Any] | None = None
    ) -> dict[str, Any]: ...

    async def save(
        self,
        base_name: str,
        node: Mapping[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> None: ...


class SubscriberSet:
    """Per-base-name change callbacks shared by the bundled backends."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}

    def add(self, base_name: str, callback: Subscriber) -> Unsubscribe:
        callbacks = self._subscribers.setdefault(base_name, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    async def notify(self, base_name: str, variant_name: str, node: dict[str, Any]) -> None:
        """Call every subscriber of ``base_name``; a failing callback is logged."""
        for callback in list(self._subscribers.get(base_name, [])):
            try:
                result = callback(variant_name, node)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Subscriber for '%s' failed on save of '%s'", base_name, variant_name
                )


def check_allowed(
    allowed_variants: Mapping[str, Iterable[str]] | None,
    context: VariantContext,
) -> None:
    """Raise VariantNotAllowedError when a context value is not whitelisted."""
    if not allowed_variants:
        return
    for dimension, allowed in allowed_variants.items():
        value = context.get(dimension)
        if value is None:
            continue
        permitted = {str(item) for item in allowed}
        if str(value) not in permitted:
            raise VariantNotAllowedError(dimension, value, permitted)
