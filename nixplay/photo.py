from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING, BinaryIO, Optional, Union

import requests

from nixplay import identity
from nixplay.api import Connection, PhotoRecord, decode_album_photo
from nixplay.cache import DeletedListener
from nixplay.context import RequestContext
from nixplay.errors import FormatError, NixplayError, TransportError, annotate
from nixplay.transport import check_status, do_discard, do_json
from nixplay.types import ID, ContainerType, ContentHash

if TYPE_CHECKING:
    from nixplay.container import Container

_LOGGER = logging.getLogger(__name__)

# Only the "bytes <first>-<last>/<total>" form carries the total size.
# https://datatracker.ietf.org/doc/html/rfc7233#section-4.2
_SIZE_FROM_CONTENT_RANGE = re.compile(r"^bytes \d+-\d+/(\d+)$")


def size_from_content_range(header: Optional[str]) -> int:
    match = _SIZE_FROM_CONTENT_RANGE.match(header or "")
    if match is None:
        raise FormatError(f"could not parse Content-Range header {header!r}")
    return int(match.group(1))


class Photo:
    """A photo inside one album or playlist.

    Only the stable ID and the content hash are guaranteed to be known up
    front. The rest is filled in on demand: the name from the picture
    endpoint, the size from a one byte ranged download, and the URL and
    service ids of a freshly uploaded photo from a relist of its container.
    """

    def __init__(self, container: Container, connection: Connection, name: Optional[str] = None,
                 content_hash: Union[ContentHash, str, None] = None, url: Optional[str] = None,
                 nixplay_id: Optional[int] = None, size: Optional[int] = None,
                 playlist_item_id: Optional[str] = None):
        self._container = container
        self._connection = connection
        self._content_hash = identity.resolve_content_hash(content_hash, url)
        self._id = identity.photo_id(container.id, self._content_hash)

        self._name = name
        self._url = url
        self._nixplay_id = nixplay_id
        self._size = size
        self._playlist_item_id = playlist_item_id
        self._listeners: list[DeletedListener] = []

    @classmethod
    def from_record(cls, container: Container, connection: Connection, record: PhotoRecord) -> Photo:
        return cls(
            container, connection,
            name=record.name,
            content_hash=record.content_hash,
            url=record.url,
            nixplay_id=record.nixplay_id,
            size=record.size,
            playlist_item_id=record.playlist_item_id,
        )

    def __repr__(self):
        return f"Photo(name={self._name!r}, id={self._id.hex()[:16]}, container={self._container!r})"

    @property
    def id(self) -> ID:
        return self._id

    @property
    def content_hash(self) -> ContentHash:
        return self._content_hash

    @property
    def container(self) -> Container:
        return self._container

    @annotate("photo_name")
    def name(self, ctx: Optional[RequestContext] = None) -> str:
        # Called while the container's cache is locked, so this must not go
        # back through the cache; only the picture endpoint is used.
        if self._name is None and self._nixplay_id is not None:
            record = decode_album_photo(do_json(
                self._connection.doer, self._connection.endpoints.picture(self._nixplay_id), ctx))
            self._name = record.name
        if not self._name:
            raise NixplayError("failed to determine photo name")
        return self._name

    @annotate("photo_size")
    def size(self, ctx: Optional[RequestContext] = None) -> int:
        if self._size is None:
            self._size = self._size_from_range_request(ctx)
        return self._size

    @annotate("photo_url")
    def url(self, ctx: Optional[RequestContext] = None) -> str:
        if self._url is None:
            self._populate_from_container(ctx)
        return self._url

    @annotate("photo_nixplay_id")
    def nixplay_id(self, ctx: Optional[RequestContext] = None) -> int:
        if self._nixplay_id is None:
            self._populate_from_container(ctx)
        if self._nixplay_id is None:
            raise NixplayError("unable to determine internal Nixplay ID")
        return self._nixplay_id

    @annotate("open_photo")
    def open(self, ctx: Optional[RequestContext] = None) -> BinaryIO:
        """Start downloading the photo, returns a readable binary stream."""
        request = requests.Request("GET", self.url(ctx))
        response = self._connection.storage_doer.execute(request, ctx, stream=True)
        if response.status_code != 200:
            try:
                check_status(response)
                raise TransportError(f"unexpected http status {response.status_code}",
                                     status_code=response.status_code)
            finally:
                response.close()

        if self._size is None and response.headers.get("Content-Length"):
            self._size = int(response.headers["Content-Length"])
        response.raw.decode_content = True
        return response.raw

    def read(self, ctx: Optional[RequestContext] = None) -> bytes:
        stream = self.open(ctx)
        try:
            return stream.read()
        finally:
            stream.close()

    @annotate("delete_photo")
    def delete(self, ctx: Optional[RequestContext] = None):
        """Delete the photo from its container.

        Album photos are deleted for good, which also drops them from every
        playlist. Playlist photos are only unlinked from the playlist.
        """
        self._ensure_remote_ids(ctx)
        request = self._connection.endpoints.delete_photo(
            self._container.container_type, self._container.nixplay_id, self._record())
        do_discard(self._connection.doer, request, ctx)

        _LOGGER.debug("deleted %r", self)
        for listener in list(self._listeners):
            listener.element_deleted(self, ctx)

    def add_deleted_listener(self, listener: DeletedListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def generate_unique_name(self, ctx: Optional[RequestContext] = None) -> str:
        stem, ext = os.path.splitext(self.name(ctx))
        return f"{stem} ({self._id.hex()[:16]}){ext}"

    def _record(self) -> PhotoRecord:
        return PhotoRecord(
            name=self._name,
            content_hash=self._content_hash.hex(),
            nixplay_id=self._nixplay_id,
            url=self._url,
            size=self._size,
            playlist_item_id=self._playlist_item_id,
        )

    def _has_remote_ids(self) -> bool:
        if self._url is None:
            return False
        if self._container.container_type == ContainerType.PLAYLIST:
            return self._playlist_item_id is not None
        return self._nixplay_id is not None

    def _ensure_remote_ids(self, ctx):
        if not self._has_remote_ids():
            self._populate_from_container(ctx)

    def _populate_from_container(self, ctx):
        # Uploads do not report the service's ids for the new photo. Find the
        # listed copy with the same stable ID; if the cached listing predates
        # the upload, relist once.
        if self._copy_from_container(ctx):
            return
        _LOGGER.debug("%r not in cached listing, relisting container", self)
        self._container.reset_cache()
        if not self._copy_from_container(ctx):
            raise NixplayError("incomplete photo data in list")

    def _copy_from_container(self, ctx) -> bool:
        listed = self._container.photo_with_id(self._id, ctx)
        if listed is None or listed is self or not listed._has_remote_ids():
            return False
        self._url = listed._url
        self._nixplay_id = listed._nixplay_id
        self._playlist_item_id = listed._playlist_item_id
        if self._name is None:
            self._name = listed._name
        if self._size is None:
            self._size = listed._size
        return True

    def _size_from_range_request(self, ctx) -> int:
        # Presigned URLs are only valid for GET, so HEAD is not an option.
        request = requests.Request("GET", self.url(ctx), headers={"Range": "bytes=0-0"})
        response = self._connection.storage_doer.execute(request, ctx)
        try:
            check_status(response)
            if response.status_code != 206:
                raise TransportError(f"expected partial content, got http status {response.status_code}",
                                     status_code=response.status_code)
            return size_from_content_range(response.headers.get("Content-Range"))
        finally:
            response.close()
