from __future__ import annotations

import logging
import threading
from typing import BinaryIO, Optional, Union

from nixplay import identity
from nixplay.api import Connection, ContainerRecord, UploadTarget, decode_photos_page
from nixplay.cache import DeletedListener, EntityCache
from nixplay.context import RequestContext
from nixplay.errors import annotate
from nixplay.photo import Photo
from nixplay.transport import do_discard, do_json
from nixplay.types import ID, ContainerType
from nixplay.upload import upload_photo

_LOGGER = logging.getLogger(__name__)


class Container:
    """An album or playlist and the cached listing of its photos.

    The photo cache starts out empty and is paginated on first read. Uploads
    and deletes update it in place, :meth:`reset_cache` forces a relist.
    """

    def __init__(self, connection: Connection, container_type: ContainerType, nixplay_id: int,
                 name: str, photo_count: int = -1):
        self.container_type = ContainerType.parse(container_type)
        self.nixplay_id = nixplay_id
        self._connection = connection
        self._name = name
        self._id = identity.container_id(self.container_type, nixplay_id)

        # -1 until known, kept up to date by uploads and deletes afterwards.
        self._photo_count_lock = threading.Lock()
        self._photo_count = photo_count

        self._listeners: list[DeletedListener] = []
        self._photos: EntityCache[Photo] = EntityCache(self._photos_page)
        self._photos.add_deleted_listener(self)

    @classmethod
    def from_record(cls, connection: Connection, record: ContainerRecord) -> Container:
        return cls(connection, record.container_type, record.nixplay_id, record.name, record.photo_count)

    def __repr__(self):
        return f"Container({self.container_type.value}, {self._name!r}, nixplay_id={self.nixplay_id})"

    @property
    def id(self) -> ID:
        return self._id

    def name(self, ctx: Optional[RequestContext] = None) -> str:
        return self._name

    def generate_unique_name(self, ctx: Optional[RequestContext] = None) -> str:
        return f"{self._name} ({self._id.hex()[:16]})"

    @annotate("photo_count")
    def photo_count(self, ctx: Optional[RequestContext] = None) -> int:
        with self._photo_count_lock:
            if self._photo_count < 0:
                self._photo_count = self._photos.count(ctx)
            return self._photo_count

    @annotate("photos")
    def photos(self, ctx: Optional[RequestContext] = None) -> list[Photo]:
        return self._photos.all(ctx)

    @annotate("photos_with_name")
    def photos_with_name(self, name: str, ctx: Optional[RequestContext] = None) -> list[Photo]:
        return self._photos.elements_with_name(name, ctx)

    @annotate("photo_with_unique_name")
    def photo_with_unique_name(self, name: str, ctx: Optional[RequestContext] = None) -> Optional[Photo]:
        return self._photos.element_with_unique_name(name, ctx)

    @annotate("photo_with_id")
    def photo_with_id(self, photo_id: ID, ctx: Optional[RequestContext] = None) -> Optional[Photo]:
        return self._photos.element_with_id(photo_id, ctx)

    @annotate("add_photo")
    def add_photo(self, name: str, stream: Union[BinaryIO, bytes], mime_type: Optional[str] = None,
                  size: Optional[int] = None, ctx: Optional[RequestContext] = None) -> Photo:
        """
        Upload a photo and add it to the cached listing without relisting.

        Args:
            name: Display name, its extension gives the MIME type if
                ``mime_type`` is not set.
            stream: Photo content, seeking is not required.
            mime_type: Optional MIME type.
            size: Optional size in bytes.
            ctx: Optional cancellation context.
        """
        target = UploadTarget(self.container_type, self.nixplay_id)
        uploaded = upload_photo(
            self._connection.doer, self._connection.storage_doer, self._connection.endpoints,
            target, name, stream, mime_type=mime_type, size=size, ctx=ctx)

        photo = Photo(self, self._connection, uploaded.name,
                      content_hash=uploaded.content_hash, size=uploaded.size)
        # Re-uploading content a playlist already shows does not add a slide.
        if self._photos.add(photo):
            with self._photo_count_lock:
                if self._photo_count >= 0:
                    self._photo_count += 1
        return photo

    @annotate("delete_container")
    def delete(self, ctx: Optional[RequestContext] = None):
        request = self._connection.endpoints.delete_container(self.container_type, self.nixplay_id)
        do_discard(self._connection.doer, request, ctx)

        _LOGGER.debug("deleted %r", self)
        for listener in list(self._listeners):
            listener.element_deleted(self, ctx)

    def add_deleted_listener(self, listener: DeletedListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def reset_cache(self):
        """Drop the cached photo listing so the next read relists."""
        self._photos.reset()
        with self._photo_count_lock:
            self._photo_count = -1

    def element_deleted(self, photo: Photo, ctx: Optional[RequestContext] = None):
        with self._photo_count_lock:
            if self._photo_count > 0:
                self._photo_count -= 1

    def _photos_page(self, page: int, ctx: Optional[RequestContext]) -> list[Photo]:
        request = self._connection.endpoints.photos_page(
            self.container_type, self.nixplay_id, page, self._connection.page_size)
        records = decode_photos_page(self.container_type, do_json(self._connection.doer, request, ctx))
        photos = [Photo.from_record(self, self._connection, record) for record in records]

        seen = set()
        for photo in photos:
            if photo.id in seen:
                # The same album photo linked twice into one playlist has no
                # distinguishing identifier, only the first link is listed.
                _LOGGER.warning("%r lists the same content more than once, duplicates are hidden", self)
                break
            seen.add(photo.id)
        return photos
