"""Lazily paginated, indexed cache of remote entities.

The service never hands back a stable identifier or a reliable total, so a
cache walks the pages of a listing until the first empty one and keeps the
result indexed by ID, by name and by unique name. Entries only change through
:meth:`EntityCache.add` (after a create or upload) and through deletion
notifications; :meth:`EntityCache.reset` is the only way to resync with the
service.

One lock guards each cache and it is held while pages are fetched, so
concurrent readers of the same cache wait for each other's network calls.
Separate caches are independent.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from nixplay.context import RequestContext
from nixplay.errors import ConsistencyError
from nixplay.types import ID

_LOGGER = logging.getLogger(__name__)


class Identifiable(Protocol):
    @property
    def id(self) -> ID:
        ...

    def name(self, ctx: Optional[RequestContext] = None) -> str:
        ...


class DeletedListener(Protocol):
    def element_deleted(self, element, ctx: Optional[RequestContext] = None) -> None:
        ...


class DeletionObservable(Protocol):
    def add_deleted_listener(self, listener: DeletedListener) -> None:
        ...


class Entity(Identifiable, DeletionObservable, Protocol):
    """What a cache can hold: identifiable and able to report its deletion."""


@runtime_checkable
class UniqueNameGenerator(Protocol):
    def generate_unique_name(self, ctx: Optional[RequestContext] = None) -> str:
        """Unique variant of the element's name.

        Called only for elements whose plain name collides with a sibling's;
        the implementation does not need to check for the collision itself.
        """
        ...


T = TypeVar("T", bound=Entity)


class EntityCache(Generic[T]):
    def __init__(self, fetch_page: Callable[[int, Optional[RequestContext]], Sequence[T]]):
        """
        Args:
            fetch_page: Returns the elements on the given page, pages start
                at 0. An empty page marks the end of the listing.
        """
        self._fetch_page = fetch_page
        self._lock = threading.Lock()
        self._listeners: list[DeletedListener] = []
        self._reset_unlocked()

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._exhausted

    def all(self, ctx: Optional[RequestContext] = None) -> list[T]:
        """Every element, walking the remaining pages first if needed."""
        with self._lock:
            self._load_all_unlocked(ctx)
            return list(self._elements)

    def count(self, ctx: Optional[RequestContext] = None) -> int:
        with self._lock:
            self._load_all_unlocked(ctx)
            return len(self._elements)

    def elements_with_name(self, name: str, ctx: Optional[RequestContext] = None) -> list[T]:
        """Elements named ``name``; an empty list when there are none."""
        with self._lock:
            self._load_all_unlocked(ctx)
            self._build_name_index_unlocked(ctx)
            return list(self._by_name.get(name, []))

    def element_with_unique_name(self, name: str, ctx: Optional[RequestContext] = None) -> Optional[T]:
        with self._lock:
            self._load_all_unlocked(ctx)
            self._build_name_index_unlocked(ctx)
            self._build_unique_name_index_unlocked(ctx)
            return self._by_unique_name.get(name)

    def element_with_id(self, element_id: ID, ctx: Optional[RequestContext] = None) -> Optional[T]:
        with self._lock:
            self._load_all_unlocked(ctx)
            return self._by_id.get(element_id)

    def add(self, element: T) -> bool:
        """Insert a newly created element without relisting.

        Adding an element whose ID is already cached does nothing and returns
        False.
        """
        with self._lock:
            return self._add_unlocked(element)

    def remove(self, element: T, ctx: Optional[RequestContext] = None):
        with self._lock:
            cached = self._by_id.get(element.id)
            if cached is None:
                return

            if self._by_name is not None:
                # Use the cached copy, it already knows its name because the
                # name index was built from it.
                try:
                    name = cached.name(ctx)
                except Exception:
                    _LOGGER.warning("failed to read name of removed element, resetting cache")
                    self._reset_unlocked()
                    raise
                siblings = [e for e in self._by_name.get(name, []) if e.id != element.id]
                if siblings:
                    self._by_name[name] = siblings
                else:
                    self._by_name.pop(name, None)

            self._elements = [e for e in self._elements if e.id != element.id]
            del self._by_id[element.id]
            self._by_unique_name = None

    def reset(self):
        """Forget everything, the next read walks the pages from page 0."""
        with self._lock:
            _LOGGER.debug("resetting cache")
            self._reset_unlocked()

    def add_deleted_listener(self, listener: DeletedListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def element_deleted(self, element: T, ctx: Optional[RequestContext] = None):
        self.remove(element, ctx)
        for listener in list(self._listeners):
            listener.element_deleted(element, ctx)

    def _reset_unlocked(self):
        self._exhausted = False
        self._elements: list[T] = []
        self._by_id: dict[ID, T] = {}
        self._by_name: Optional[dict[str, list[T]]] = None
        self._by_unique_name: Optional[dict[str, T]] = None

    def _load_all_unlocked(self, ctx):
        # Pages already fetched by an interrupted walk stay cached, already
        # seen IDs are skipped when the walk starts over.
        page = 0
        while not self._exhausted:
            if ctx is not None:
                ctx.check()
            elements = self._fetch_page(page, ctx)
            _LOGGER.debug("fetched page %d with %d elements", page, len(elements))
            if not elements:
                self._exhausted = True
            for element in elements:
                self._add_unlocked(element)
            page += 1

    def _add_unlocked(self, element) -> bool:
        if element.id in self._by_id:
            return False
        self._elements.append(element)
        self._by_id[element.id] = element
        # The new element's name may need a remote call, so rebuild lazily.
        self._by_name = None
        self._by_unique_name = None
        element.add_deleted_listener(self)
        return True

    def _build_name_index_unlocked(self, ctx):
        if self._by_name is not None:
            return
        by_name: dict[str, list[T]] = {}
        for element in self._elements:
            by_name.setdefault(element.name(ctx), []).append(element)
        self._by_name = by_name

    def _build_unique_name_index_unlocked(self, ctx):
        if self._by_unique_name is not None:
            return
        by_unique_name: dict[str, T] = {}
        collisions = []
        for name, elements in self._by_name.items():
            if len(elements) == 1:
                by_unique_name[name] = elements[0]
            else:
                collisions.append((name, elements))

        for name, elements in collisions:
            for element in elements:
                if not isinstance(element, UniqueNameGenerator):
                    raise ConsistencyError(
                        f"unable to produce unique names because {type(element).__name__} "
                        "can not generate a unique name")
                unique_name = element.generate_unique_name(ctx)
                if unique_name == name or unique_name in by_unique_name:
                    raise ConsistencyError(f"multiple elements with the unique name {unique_name!r} exist")
                by_unique_name[unique_name] = element
        self._by_unique_name = by_unique_name
