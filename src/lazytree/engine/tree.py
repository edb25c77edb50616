"""LazyTree: lazy, variant-aware evaluation over a document tree.

Reads enter through get(); each read walks the raw tree segment by segment,
merging self-directives, selecting variant keys and materializing
directives on the way. Every directive, self-directive and composite
mapping is memoized in the EvaluationCache, and the paths an evaluation
reads are recorded as dependency edges so that set() can invalidate
exactly what went stale.

Cache states follow UNEVALUATED -> IN_PROGRESS -> MATERIALIZED | ERROR.
Finding IN_PROGRESS on a path already on the reader's own stack is the
cycle signal; a reader in another task waits for the entry to settle.
"""

import asyncio
import copy
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from lazytree.config import EngineOptions
from lazytree.engine.cache import CacheState, EvaluationCache
from lazytree.engine.merge import merge_self_directive
from lazytree.errors import (
    CircularDependencyError,
    CircularReferenceError,
    EvaluationError,
    ExpressionError,
    LazyTreeError,
    MaxDepthExceededError,
    ReservedKeyError,
    UnresolvedPathError,
)
from lazytree.expressions import (
    EvaluationContext,
    ResolverRegistry,
    ensure_builtins,
    evaluate,
)
from lazytree.paths import (
    SELF_KEY,
    SIGIL,
    VARIANT_SEPARATOR,
    Segment,
    TreePath,
    format_path,
    is_directive_key,
    parse_path,
    property_name,
    strip_sigil,
    twin_key,
)
from lazytree.variants import (
    WELL_KNOWN_KEYS,
    VariantContext,
    collect_context,
    resolve,
)

logger = logging.getLogger(__name__)

# Terminal keys that collide with the LazyTree surface
RESERVED_KEYS = frozenset(
    {
        "get",
        "set",
        "has",
        "delete",
        "keys",
        "to_dict",
        "set_context",
        "clear_cache",
        "dependents",
    }
)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class FrameKind(Enum):
    """What an evaluation frame is producing."""

    EXPRESSION = "expression"  # directive or self-directive; counts toward depth
    COMPOSITE = "composite"    # a mapping assembled from its properties


class _NodeKind(Enum):
    RAW = "raw"              # tree data: may hold directives and variants
    PLAIN = "plain"          # a directive's result: plain values only
    DIRECTIVE = "directive"  # an unevaluated directive source


@dataclass
class _Frame:
    path: TreePath
    kind: FrameKind


@dataclass(eq=False)
class _EvaluationState:
    """Evaluation stack of one task.

    Re-entrant reads in the same task push onto it; a task spawned by a
    resolver (e.g. through asyncio.gather) starts its own copy.
    """

    task: Any = None
    frames: list[_Frame] = field(default_factory=list)
    reported: set[int] = field(default_factory=set)
    waiting_on: TreePath | None = None

    @property
    def chain(self) -> list[TreePath]:
        return [frame.path for frame in self.frames]

    @property
    def depth(self) -> int:
        return sum(1 for frame in self.frames if frame.kind is FrameKind.EXPRESSION)


class _TreeHost:
    """The evaluator's view of a LazyTree."""

    def __init__(self, tree: "LazyTree"):
        self._tree = tree

    async def exists(self, path: TreePath) -> bool:
        return await self._tree._exists(path)

    async def read(self, path: TreePath) -> Any:
        return await self._tree._read(path)

    async def read_fresh(self, path: TreePath) -> Any:
        return await self._tree._read(path, fresh=True)


class LazyTree:
    """A document tree whose directive keys are evaluated on demand.

    Usage:
        tree = LazyTree(
            {"price": 5, "qty": 2, ".total": "${price * qty}"},
            resolvers={"fetchUser": fetch_user},
        )
        await tree.get("total")  # 10
        await tree.set("qty", 3)
        await tree.get("total")  # 15

    String paths are dotted (``"a.b.0.c"``). A leading ``.`` in set()
    writes the terminal key as a directive; a segment containing ``:``
    addresses one variant key exactly.
    """

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        options: EngineOptions | None = None,
        **overrides: Any,
    ):
        if data is not None and not isinstance(data, Mapping):
            raise TypeError(f"Document root must be a mapping, got {type(data).__name__}")

        self._data: dict[str, Any] = copy.deepcopy(dict(data or {}))
        self.options = (options or EngineOptions()).with_overrides(**overrides)
        self.resolvers = ResolverRegistry(self.options.resolvers)
        self._cache = EvaluationCache()
        self._lock = asyncio.Lock()
        self._running: dict[TreePath, tuple[_EvaluationState, asyncio.Event]] = {}
        self._state: ContextVar[_EvaluationState | None] = ContextVar(
            f"lazytree_evaluation_{id(self)}", default=None
        )
        self._host = _TreeHost(self)
        ensure_builtins()

    @classmethod
    async def from_storage(
        cls,
        storage: Any,
        base_name: str,
        context: VariantContext | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> "LazyTree":
        """Load the best variant of a document and wrap it in a LazyTree."""
        variant_context = VariantContext.coerce(context)
        node = await storage.load(base_name, variant_context)
        return cls(node, base_context=variant_context, **overrides)

    # -------------------------------------------------------------------------
    # Public surface
    # -------------------------------------------------------------------------

    @property
    def context(self) -> VariantContext:
        """The base variant context applied at the root."""
        return self.options.base_context

    async def get(
        self, path: Any = None, ignore_cache: bool = False, fallback: Any = MISSING
    ) -> Any:
        """Materialized value at ``path`` (the whole document by default).

        Mappings come back fully materialized: directives evaluated,
        variants selected and self-directives merged. When nothing lives at
        ``path`` the per-call ``fallback`` is returned, else the
        ``fallback`` option; a callable fallback is called (and awaited).

        Raises:
            UnresolvedPathError: If nothing lives at ``path`` and no
                fallback is given
        """
        tree_path = parse_path(path)
        async with self._evaluation():
            if ignore_cache:
                self._cache.discard_settled(tree_path)
            value = await self._materialize(tree_path)

        if value is not MISSING:
            return value
        if fallback is MISSING:
            if not self.options.has_fallback:
                raise UnresolvedPathError(format_path(tree_path), tree_path)
            fallback = self.options.fallback
        if callable(fallback):
            fallback = fallback()
            if inspect.isawaitable(fallback):
                fallback = await fallback
        return fallback

    async def has(self, path: Any) -> bool:
        """Whether ``path`` resolves to a value; evaluation errors count as absent."""
        tree_path = parse_path(path)
        async with self._evaluation():
            try:
                value = await self._materialize(tree_path)
            except LazyTreeError as e:
                logger.debug("has(%s) treating error as absent: %s", format_path(tree_path), e)
                return False
        return value is not MISSING

    async def set(self, path: Any, value: Any, trigger_dependents: bool = True) -> None:
        """Write a value into the tree and invalidate what it affects.

        The path's own cache entries (with those below and above it) are
        always dropped; dependents are invalidated transitively only when
        ``trigger_dependents`` is true. Setting ``x`` replaces a ``.x``
        directive and vice versa.

        Raises:
            ReservedKeyError: If the terminal key is a LazyTree method name
        """
        directive = isinstance(path, str) and path.strip().startswith(SIGIL)
        tree_path = parse_path(path)
        if not tree_path:
            raise ValueError("Cannot set the document root; construct a new LazyTree")

        parent, terminal = tree_path[:-1], tree_path[-1]
        if isinstance(terminal, str) and property_name(terminal) in RESERVED_KEYS:
            raise ReservedKeyError(terminal)

        async with self._evaluation():
            container = self._container_for(parent)
            stored = copy.deepcopy(value)

            if isinstance(container, list):
                if not isinstance(terminal, int) or not 0 <= terminal <= len(container):
                    raise IndexError(f"Index {terminal!r} out of range at '{format_path(parent)}'")
                if terminal == len(container):
                    container.append(stored)
                else:
                    container[terminal] = stored
                name: Segment = terminal
            else:
                key = str(terminal)
                if directive and key != SELF_KEY and not is_directive_key(key):
                    key = SIGIL + key
                twin = twin_key(key)
                if twin is not None:
                    container.pop(twin, None)
                container[key] = stored
                name = strip_sigil(key)

            self._invalidate_write(parent, name, trigger_dependents, shifted=False)

    async def delete(self, path: Any, trigger_dependents: bool = True) -> bool:
        """Remove a property (static or directive form); False if absent."""
        tree_path = parse_path(path)
        if not tree_path:
            raise ValueError("Cannot delete the document root")
        parent, terminal = tree_path[:-1], tree_path[-1]

        async with self._evaluation():
            container = self._raw_node(parent)

            if isinstance(container, list):
                if not isinstance(terminal, int) or not 0 <= terminal < len(container):
                    return False
                del container[terminal]
                self._invalidate_write(parent, terminal, trigger_dependents, shifted=True)
                return True

            if not isinstance(container, dict):
                return False

            key = str(terminal)
            removed = False
            for candidate in (key, twin_key(key)):
                if candidate is not None and candidate in container:
                    del container[candidate]
                    removed = True

            if removed:
                self._invalidate_write(parent, strip_sigil(key), trigger_dependents, shifted=False)
            return removed

    def keys(self, path: Any = None) -> list[str]:
        """Property names at ``path`` in the raw tree, without evaluating anything.

        Directive sigils and variant suffixes are collapsed, so
        ``{"a": 1, ".b": "...", "c:es": "..."}`` lists ``["a", "b", "c"]``.
        """
        node = self._raw_node(parse_path(path))
        if isinstance(node, Mapping):
            return _property_names(node)
        if isinstance(node, list):
            return [str(index) for index in range(len(node))]
        return []

    def to_dict(self) -> dict[str, Any]:
        """Deep copy of the raw tree, directives unevaluated."""
        return copy.deepcopy(self._data)

    def set_context(self, context: VariantContext | Mapping[str, Any] | None) -> None:
        """Replace the base variant context; every cached value is dropped."""
        self.options = self.options.with_overrides(base_context=VariantContext.coerce(context))
        self._cache.clear()
        logger.debug("Base context set to %s; cache cleared", self.options.base_context)

    def clear_cache(self) -> None:
        self._cache.clear()

    def dependents(self, path: Any) -> list[str]:
        """Paths that would be invalidated by a write to ``path``, breadth-first."""
        return [format_path(p) for p in self._cache.graph.dependents_of([parse_path(path)])]

    def cache_state(self, path: Any) -> CacheState:
        """Cache state of one path, for inspection."""
        return self._cache.state(parse_path(path))

    # -------------------------------------------------------------------------
    # Evaluation stack
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _evaluation(self) -> AsyncIterator[_EvaluationState]:
        """Serialize top-level calls; re-entrant calls join the active stack."""
        if self._state.get() is not None:
            yield self._current_state()
            return

        async with self._lock:
            state = _EvaluationState(asyncio.current_task())
            token = self._state.set(state)
            try:
                yield state
            finally:
                self._state.reset(token)

    def _current_state(self) -> _EvaluationState:
        """The calling task's stack, forked from its parent's on first use."""
        task = asyncio.current_task()
        state = self._state.get()
        if state is None:
            return _EvaluationState(task)
        if state.task is not task:
            state = _EvaluationState(task, list(state.frames), state.reported)
            self._state.set(state)
        return state

    async def _enter(
        self,
        path: TreePath,
        kind: FrameKind,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Produce the value at ``path`` through the cache state machine."""
        state = self._current_state()

        while True:
            entry = self._cache.get(path)
            if entry is None:
                break
            if entry.state is CacheState.MATERIALIZED:
                return entry.value
            if entry.state is CacheState.ERROR:
                raise entry.error
            chain = state.chain
            if path in chain or path + (SELF_KEY,) in chain:
                self_merging = self._cache.state(path + (SELF_KEY,)) is CacheState.IN_PROGRESS
                if path[-1:] == (SELF_KEY,) or self_merging:
                    raise CircularReferenceError(chain + [path])
                raise CircularDependencyError(chain + [path])
            # In progress in a sibling task
            await self._wait_for(state, path)

        if kind is FrameKind.EXPRESSION and state.depth >= self.options.max_evaluation_depth:
            raise MaxDepthExceededError(
                self.options.max_evaluation_depth, state.chain + [path]
            )

        frame = _Frame(path, kind)
        done = asyncio.Event()
        self._cache.begin(path)
        self._running[path] = (state, done)
        state.frames.append(frame)
        try:
            value = await compute()
        except Exception as error:
            return await self._recover(state, frame, error)
        except BaseException:
            # Cancelled: leave the path to be evaluated again
            self._cache.reset(path)
            raise
        else:
            self._cache.materialize(path, value)
            return value
        finally:
            state.frames.pop()
            self._running.pop(path, None)
            done.set()

    async def _wait_for(self, state: _EvaluationState, path: TreePath) -> None:
        """Block until the task evaluating ``path`` settles it.

        Following what each holder is itself waiting on must not lead back
        to ``state``; that would be a cycle split across tasks.
        """
        running = self._running.get(path)
        if running is None:
            raise CircularDependencyError(state.chain + [path])

        holder: _EvaluationState | None = running[0]
        seen: set[int] = set()
        while holder is not None and id(holder) not in seen:
            if holder is state:
                raise CircularDependencyError(state.chain + [path])
            seen.add(id(holder))
            if holder.waiting_on is None:
                break
            blocked = self._running.get(holder.waiting_on)
            holder = blocked[0] if blocked else None

        state.waiting_on = path
        try:
            await running[1].wait()
        finally:
            state.waiting_on = None

    async def _recover(
        self, state: _EvaluationState, frame: _Frame, error: Exception
    ) -> Any:
        """Apply the error policy at the boundary of ``frame``.

        Returns the on_error fallback, or raises.
        """
        path = frame.path
        is_entry = bool(state.frames) and state.frames[0] is frame

        if frame.kind is FrameKind.COMPOSITE or (
            isinstance(error, MaxDepthExceededError) and not is_entry
        ):
            self._cache.reset(path)
            raise error

        if id(error) in state.reported:
            self._cache.fail(path, error)
            raise error

        failure: Exception = error
        if not isinstance(error, LazyTreeError):
            failure = EvaluationError(f"{type(error).__name__}: {error}", path, cause=error)
            failure.__cause__ = error
        elif isinstance(error, ExpressionError) and error.path is None:
            error.path = path
        state.reported.add(id(failure))

        handler = self.options.on_error
        if handler is None:
            self._cache.fail(path, failure)
            raise failure

        try:
            fallback = handler(failure, format_path(path))
            if inspect.isawaitable(fallback):
                fallback = await fallback
        except Exception as handler_error:
            state.reported.add(id(handler_error))
            self._cache.fail(path, handler_error)
            raise

        logger.warning(
            "Error evaluating '%s', using fallback from on_error: %s",
            format_path(path),
            failure,
        )
        self._cache.materialize(path, fallback)
        return fallback

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _read(self, path: TreePath, fresh: bool = False) -> Any:
        """Read entry point for expressions; records the dependency edge."""
        state = self._current_state()
        dependent = state.frames[-1].path if state.frames else None
        if dependent is not None:
            self._cache.graph.record(dependent, path)
        if fresh:
            self._cache.discard_settled(path)

        value = await self._materialize(path)
        if value is MISSING:
            raise UnresolvedPathError(format_path(path), dependent)
        return value

    async def _exists(self, path: TreePath) -> bool:
        """Structural existence check used by the scoped name search.

        The lookup is recorded as a dependency even when nothing is found,
        so a later write that shadows an outer value invalidates the reader.
        """
        state = self._current_state()
        if state.frames:
            self._cache.graph.record(state.frames[-1].path, path)
        if not path:
            return True
        _, node = await self._walk(path, evaluate_last=False)
        return node is not MISSING

    async def _materialize(self, path: TreePath) -> Any:
        kind, node = await self._walk(path, evaluate_last=True)
        if node is MISSING:
            return MISSING
        return await self._finish(path, kind, node)

    async def _walk(self, path: TreePath, evaluate_last: bool) -> tuple[_NodeKind, Any]:
        """Follow ``path`` from the root, materializing directives on the way."""
        kind, node = _NodeKind.RAW, self._data

        for depth, segment in enumerate(path):
            here, target = path[:depth], path[: depth + 1]

            if kind is _NodeKind.RAW and isinstance(node, Mapping):
                mapping = await self._effective_mapping(here, node)
                key = self._select_key(here, mapping, segment)
                if key is None:
                    return kind, MISSING
                if not is_directive_key(key):
                    node = mapping[key]
                elif depth == len(path) - 1 and not evaluate_last:
                    return _NodeKind.DIRECTIVE, mapping[key]
                else:
                    kind, node = _NodeKind.PLAIN, await self._directive(target, mapping[key])
            else:
                node = _child(node, segment)
                if node is MISSING:
                    return kind, MISSING

        return kind, node

    async def _finish(self, path: TreePath, kind: _NodeKind, node: Any) -> Any:
        """Turn a located node into its materialized value."""
        if kind is not _NodeKind.RAW:
            return node
        if isinstance(node, Mapping):
            return await self._enter(
                path, FrameKind.COMPOSITE, lambda: self._build_mapping(path, node)
            )
        if isinstance(node, list):
            return [
                await self._finish(path + (index,), _NodeKind.RAW, item)
                for index, item in enumerate(node)
            ]
        return node

    async def _build_mapping(self, path: TreePath, node: Mapping[str, Any]) -> dict[str, Any]:
        mapping = await self._effective_mapping(path, node, partial=False)
        result: dict[str, Any] = {}

        for name in _property_names(mapping):
            key = self._select_key(path, mapping, name)
            if key is None:
                continue
            child = path + (name,)
            if is_directive_key(key):
                result[name] = await self._directive(child, mapping[key])
            else:
                result[name] = await self._finish(child, _NodeKind.RAW, mapping[key])

        return result

    # -------------------------------------------------------------------------
    # Directives and self-directives
    # -------------------------------------------------------------------------

    async def _directive(self, path: TreePath, source: Any) -> Any:
        return await self._enter(
            path, FrameKind.EXPRESSION, lambda: self._evaluate(path, source)
        )

    async def _evaluate(self, path: TreePath, source: Any) -> Any:
        if not isinstance(source, str):
            return source

        logger.debug("Evaluating '%s': %s", format_path(path), source)
        context = EvaluationContext(
            path=path,
            host=self._host,
            variant_context=self._context_for(path),
            resolvers=self.resolvers,
        )
        return await evaluate(source, context)

    async def _effective_mapping(
        self, path: TreePath, node: Mapping[str, Any], partial: bool = True
    ) -> Mapping[str, Any]:
        """The mapping at ``path`` with its self-directive merged in.

        While the self-directive itself is being evaluated, child lookups
        (``partial``) see the raw siblings; assembling the whole mapping
        at that point is a self-reference cycle.
        """
        if SELF_KEY not in node:
            return node

        self_path = path + (SELF_KEY,)
        if self_path in self._current_state().chain:
            if partial:
                return {key: value for key, value in node.items() if key != SELF_KEY}
            raise CircularReferenceError(self._current_state().chain + [self_path])

        evaluated = await self._enter(
            self_path,
            FrameKind.EXPRESSION,
            lambda: self._evaluate_self(self_path, node[SELF_KEY]),
        )
        return merge_self_directive(node, evaluated, path)

    async def _evaluate_self(self, self_path: TreePath, source: Any) -> Mapping[str, Any]:
        value = await self._evaluate(self_path, source)
        if not isinstance(value, Mapping):
            raise EvaluationError(
                f"Self-directive must evaluate to an object, got {type(value).__name__}",
                self_path,
            )
        return value

    # -------------------------------------------------------------------------
    # Variant selection
    # -------------------------------------------------------------------------

    def _context_for(self, path: TreePath) -> VariantContext:
        return collect_context(
            self._data,
            path,
            self.options.base_context,
            self.options.context_key,
            self.options.inherit_dimensions,
        )

    def _select_key(
        self, parent: TreePath, mapping: Mapping[str, Any], segment: Segment
    ) -> str | None:
        """The key of ``mapping`` holding property ``segment``, or None.

        A segment with a variant suffix is an exact lookup; otherwise every
        variant of the property competes under the effective context. When
        both ``x`` and ``.x`` are present the directive wins.
        """
        name = str(segment)

        if VARIANT_SEPARATOR in name:
            if SIGIL + name in mapping:
                return SIGIL + name
            return name if name in mapping else None

        variants: dict[str, str] = {}
        for key in mapping:
            if key == SELF_KEY or property_name(key) != name:
                continue
            variant = strip_sigil(key)
            if variant not in variants or is_directive_key(key):
                variants[variant] = key

        if not variants:
            return None
        if len(variants) == 1 and name in variants:
            return variants[name]

        chosen = resolve(name, list(variants), self._context_for(parent + (name,)))
        if chosen is None:
            return variants.get(name)
        return variants[chosen.name]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _container_for(self, parent: TreePath) -> dict[str, Any] | list[Any]:
        """Raw container at ``parent``, creating missing mappings."""
        node: Any = self._data
        for depth, segment in enumerate(parent):
            here = parent[: depth + 1]
            if isinstance(node, dict):
                key = str(segment)
                if key not in node:
                    if SIGIL + key in node:
                        raise ValueError(
                            f"'{format_path(here)}' is produced by a directive; "
                            "set the directive instead"
                        )
                    node[key] = {}
                node = node[key]
            elif isinstance(node, list) and isinstance(segment, int) and 0 <= segment < len(node):
                node = node[segment]
            else:
                raise TypeError(f"Cannot set below non-container value at '{format_path(here)}'")

        if not isinstance(node, (dict, list)):
            raise TypeError(f"Cannot set below non-container value at '{format_path(parent)}'")
        return node

    def _raw_node(self, path: TreePath) -> Any:
        """Raw node at ``path`` following static keys only; None when absent."""
        node: Any = self._data
        for segment in path:
            if isinstance(node, dict):
                key = str(segment)
                if key not in node:
                    key = next(
                        (k for k in node if not is_directive_key(k) and property_name(k) == key),
                        "",
                    )
                    if not key:
                        return None
                node = node[key]
            elif isinstance(node, list) and isinstance(segment, int) and 0 <= segment < len(node):
                node = node[segment]
            else:
                return None
        return node

    def _declares_context(self, name: Segment) -> bool:
        if name == self.options.context_key:
            return True
        return self.options.inherit_dimensions and name in WELL_KNOWN_KEYS

    def _invalidate_write(
        self,
        parent: TreePath,
        name: Segment,
        trigger_dependents: bool,
        shifted: bool,
    ) -> None:
        """Drop cache entries made stale by a write at ``parent + (name,)``."""
        changed = [parent + (name,)]
        if isinstance(name, str) and VARIANT_SEPARATOR in name:
            changed.append(parent + (property_name(name),))
        if shifted or self._declares_context(name):
            # list indices moved, or the variant context below parent changed
            changed.append(parent)

        dropped: list[TreePath] = []
        for path in changed:
            dropped.extend(self._cache.invalidate(path))

        if trigger_dependents:
            for dependent in self._cache.graph.dependents_of(changed):
                dropped.extend(self._cache.invalidate(dependent))

        logger.debug(
            "Write to '%s' invalidated %d cache entries",
            format_path(changed[0]),
            len(dropped),
        )


def _child(node: Any, segment: Segment) -> Any:
    """Plain container lookup; MISSING when absent."""
    if isinstance(node, Mapping):
        if segment in node:
            return node[segment]
        key = str(segment)
        return node[key] if key in node else MISSING
    if isinstance(node, (list, tuple)) and isinstance(segment, int):
        return node[segment] if 0 <= segment < len(node) else MISSING
    return MISSING


def _property_names(mapping: Mapping[str, Any]) -> list[str]:
    """Distinct property names in declaration order, self-directive excluded."""
    names: dict[str, None] = {}
    for key in mapping:
        if key != SELF_KEY:
            names.setdefault(property_name(key), None)
    return list(names)
