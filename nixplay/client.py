from __future__ import annotations

import functools
import logging
from typing import Optional

import requests

from nixplay.api import Connection, Endpoints, decode_containers, decode_created_container
from nixplay.auth import AuthorizedDoer
from nixplay.cache import EntityCache
from nixplay.config import ClientOptions
from nixplay.container import Container
from nixplay.context import RequestContext
from nixplay.errors import ContainerNotFoundError, annotate
from nixplay.transport import Doer, SessionDoer, do_json
from nixplay.types import ID, ContainerType

_LOGGER = logging.getLogger(__name__)


class Client:
    """Entry point: the albums and playlists of one Nixplay account.

    Containers of each type are cached the same way photos are cached inside a
    container, so repeated lookups do not hit the service. Call
    :meth:`reset_cache` when the account was changed by someone else.
    """

    def __init__(self, doer: Doer, options: Optional[ClientOptions] = None,
                 storage_doer: Optional[Doer] = None):
        """
        Args:
            doer: Authorized doer for the Nixplay API, see :meth:`login`.
            options: Connection settings, defaults to :class:`ClientOptions`.
            storage_doer: Doer for object storage transfers; a fresh session
                without the Nixplay cookies by default.
        """
        self.options = options or ClientOptions()
        if storage_doer is None:
            storage_doer = SessionDoer(timeout=self.options.timeout, user_agent=self.options.user_agent)
        self._connection = Connection(
            doer=doer,
            storage_doer=storage_doer,
            endpoints=Endpoints(self.options.api_url, self.options.monitor_url),
            page_size=self.options.page_size,
        )
        self._containers: dict[ContainerType, EntityCache[Container]] = {
            container_type: EntityCache(functools.partial(self._containers_page, container_type))
            for container_type in ContainerType
        }

    @classmethod
    def login(cls, options: Optional[ClientOptions] = None, ctx: Optional[RequestContext] = None,
              session: Optional[requests.Session] = None) -> Client:
        """Log in with the configured credentials, ``NIXPLAY_*`` variables by default."""
        options = options or ClientOptions.from_env()
        base = SessionDoer(session, timeout=options.timeout, user_agent=options.user_agent)
        doer = AuthorizedDoer.login(base, options.username, options.password, options.api_url, ctx)
        return cls(doer, options)

    @annotate("containers")
    def containers(self, container_type: ContainerType,
                   ctx: Optional[RequestContext] = None) -> list[Container]:
        return self._cache(container_type).all(ctx)

    @annotate("containers_with_name")
    def containers_with_name(self, container_type: ContainerType, name: str,
                             ctx: Optional[RequestContext] = None) -> list[Container]:
        return self._cache(container_type).elements_with_name(name, ctx)

    @annotate("container_with_unique_name")
    def container_with_unique_name(self, container_type: ContainerType, name: str,
                                   ctx: Optional[RequestContext] = None) -> Optional[Container]:
        return self._cache(container_type).element_with_unique_name(name, ctx)

    @annotate("container_with_id")
    def container_with_id(self, container_type: ContainerType, container_id: ID,
                          ctx: Optional[RequestContext] = None) -> Optional[Container]:
        return self._cache(container_type).element_with_id(container_id, ctx)

    @annotate("container")
    def container(self, container_type: ContainerType, name: str,
                  ctx: Optional[RequestContext] = None) -> Container:
        """First container with the given name.

        Unlike the other lookups a missing container is an error here.

        Raises:
            ContainerNotFoundError: If no container has that name.
        """
        matches = self._cache(container_type).elements_with_name(name, ctx)
        if not matches:
            raise ContainerNotFoundError(f"could not find {ContainerType.parse(container_type).value} {name!r}")
        return matches[0]

    @annotate("create_container")
    def create_container(self, container_type: ContainerType, name: str,
                         ctx: Optional[RequestContext] = None) -> Container:
        container_type = ContainerType.parse(container_type)
        request = self._connection.endpoints.create_container(container_type, name)
        record = decode_created_container(
            container_type, name, do_json(self._connection.doer, request, ctx))
        container = Container.from_record(self._connection, record)
        self._cache(container_type).add(container)
        _LOGGER.debug("created %r", container)
        return container

    def reset_cache(self, container_type: Optional[ContainerType] = None):
        if container_type is None:
            for cache in self._containers.values():
                cache.reset()
        else:
            self._cache(container_type).reset()

    def _cache(self, container_type) -> EntityCache[Container]:
        return self._containers[ContainerType.parse(container_type)]

    def _containers_page(self, container_type: ContainerType, page: int,
                         ctx: Optional[RequestContext]) -> list[Container]:
        # Container listings are not paginated, everything comes on page 0.
        if page > 0:
            return []
        records = []
        for request in self._connection.endpoints.containers(container_type):
            records.extend(decode_containers(container_type, do_json(self._connection.doer, request, ctx)))
        return [Container.from_record(self._connection, record) for record in records]
