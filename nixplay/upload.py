"""Photo upload protocol.

An upload takes five round trips and none of them returns the new photo's
identifier:

1. work out the MIME type and size,
2. ask for an upload token scoped to the target container,
3. register the upload, which answers with a presigned object storage form
   and the id of an upload monitor,
4. post the content to object storage, hashing it on the way,
5. check the upload monitor once.

The caller turns the returned content hash into the photo's stable ID.
"""

from __future__ import annotations

import hashlib
import io
import logging
import os
import stat
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

import requests

from nixplay import mime
from nixplay.api import (
    MONITOR_DUPLICATE_BODY,
    Endpoints,
    UploadRegistration,
    UploadTarget,
    decode_upload_registration,
    decode_upload_token,
)
from nixplay.context import RequestContext
from nixplay.errors import DuplicateImageError, TransportError, annotate
from nixplay.transport import Doer, check_status, do_json
from nixplay.types import ContainerType, ContentHash

_LOGGER = logging.getLogger(__name__)

WEB_APP_ORIGIN = "https://app.nixplay.com"


@dataclass(frozen=True)
class UploadedPhoto:
    name: str
    content_hash: ContentHash
    size: int


@dataclass(frozen=True)
class UploadDescription:
    name: str
    mime_type: str
    size: int


class HashingReader:
    """Read-through wrapper computing the MD5 of everything read from it."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._hasher = hashlib.md5()
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        self._hasher.update(chunk)
        self.bytes_read += len(chunk)
        return chunk

    def content_hash(self) -> ContentHash:
        return ContentHash(self._hasher.digest())


def _stat_size(stream) -> Optional[int]:
    try:
        fileno = stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None
    info = os.fstat(fileno)
    if not stat.S_ISREG(info.st_mode):
        return None
    return info.st_size - stream.tell()


def _seek_size(stream) -> Optional[int]:
    seekable = getattr(stream, "seekable", None)
    if seekable is None or not seekable():
        return None
    start = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    # Rewind so the content can be read again for the transfer.
    stream.seek(start)
    return end - start


@annotate("describe_upload")
def describe_upload(name: str, stream: Union[BinaryIO, bytes], mime_type: Optional[str] = None,
                    size: Optional[int] = None) -> tuple[UploadDescription, BinaryIO]:
    """
    Fill in the MIME type and size of an upload that the caller left out.

    The size comes from the file system or from seeking where the stream
    allows it. Streams supporting neither are read into memory, which costs
    the full size of the photo.

    Returns:
        The description and the stream to read the content from, which is a
        new in-memory stream when the original had to be buffered.

    Raises:
        InvalidInputError: If no MIME type was given and the name has no
            known extension.
    """
    if not mime_type:
        mime_type = mime.type_for_name(name)

    if isinstance(stream, (bytes, bytearray)):
        stream = io.BytesIO(stream)

    if not size:
        size = _stat_size(stream)
        if size is None:
            size = _seek_size(stream)
        if size is None:
            _LOGGER.debug("buffering %s into memory to determine its size", name)
            stream = io.BytesIO(stream.read())
            size = len(stream.getbuffer())

    return UploadDescription(name, mime_type, size), stream


@annotate("request_upload_token")
def request_upload_token(doer: Doer, endpoints: Endpoints, target: UploadTarget,
                         ctx: Optional[RequestContext] = None) -> str:
    return decode_upload_token(do_json(doer, endpoints.upload_token(target), ctx))


@annotate("register_upload")
def register_upload(doer: Doer, endpoints: Endpoints, target: UploadTarget, token: str,
                    description: UploadDescription,
                    ctx: Optional[RequestContext] = None) -> UploadRegistration:
    request = endpoints.register_upload(
        target, token, description.name, description.mime_type, description.size)
    return decode_upload_registration(do_json(doer, request, ctx))


@annotate("upload_to_storage")
def upload_to_storage(doer: Doer, registration: UploadRegistration, description: UploadDescription,
                      reader: HashingReader, ctx: Optional[RequestContext] = None):
    # Object storage wants the policy fields before the file part, requests
    # writes form fields ahead of files.
    request = requests.Request(
        "POST", registration.storage_url,
        data=dict(registration.storage_fields),
        files={"file": (description.name, reader, description.mime_type)},
        headers={
            "Accept": "application/json, text/plain, */*",
            "Origin": WEB_APP_ORIGIN,
            "Referer": WEB_APP_ORIGIN,
        },
    )
    response = doer.execute(request, ctx)
    try:
        if response.status_code != 201:
            raise TransportError(
                f"error uploading: http status {response.status_code}: "
                f"body: {response.content.decode('utf-8', errors='replace')}",
                status_code=response.status_code,
                body=response.content,
            )
    finally:
        response.close()


@annotate("monitor_upload")
def monitor_upload(doer: Doer, endpoints: Endpoints, monitor_id: str,
                   ctx: Optional[RequestContext] = None):
    response = doer.execute(endpoints.upload_monitor(monitor_id), ctx)
    try:
        if response.status_code == 400 and response.text == MONITOR_DUPLICATE_BODY:
            raise DuplicateImageError(
                "duplicate image with the same content already exists in this album",
                status_code=400,
                body=response.content,
            )
        check_status(response)
    finally:
        response.close()


@annotate("upload_photo")
def upload_photo(doer: Doer, storage_doer: Doer, endpoints: Endpoints, target: UploadTarget,
                 name: str, stream: Union[BinaryIO, bytes], mime_type: Optional[str] = None,
                 size: Optional[int] = None, ctx: Optional[RequestContext] = None) -> UploadedPhoto:
    """
    Upload one photo into the target container.

    Args:
        doer: Authorized doer for the Nixplay API.
        storage_doer: Doer for the presigned object storage post, it must not
            carry the Nixplay session.
        endpoints: Request builders.
        target: Container receiving the photo.
        name: Display name of the photo, also used to infer the MIME type.
        stream: Content to upload, it does not need to support seeking.
        mime_type: Optional MIME type, inferred from ``name`` when missing.
        size: Optional size in bytes, discovered from ``stream`` when missing.
        ctx: Optional cancellation context shared by every step.

    Returns:
        UploadedPhoto: The name, MD5 content hash and size of the upload.
    """
    description, stream = describe_upload(name, stream, mime_type, size)
    token = request_upload_token(doer, endpoints, target, ctx)
    registration = register_upload(doer, endpoints, target, token, description, ctx)

    reader = HashingReader(stream)
    upload_to_storage(storage_doer, registration, description, reader, ctx)
    uploaded = UploadedPhoto(description.name, reader.content_hash(), description.size)

    if len(registration.monitor_ids) != 1:
        raise TransportError(
            f"unable to wait for photo to be uploaded, got {len(registration.monitor_ids)} monitor ids")

    try:
        monitor_upload(doer, endpoints, registration.monitor_ids[0], ctx)
    except DuplicateImageError:
        # Playlist uploads are stored in the "My Uploads" album and then
        # linked to the playlist. That album rejects content it already holds
        # but the link to the playlist is still created.
        if target.container_type != ContainerType.PLAYLIST:
            raise
        _LOGGER.warning("%s already exists in My Uploads, linked to playlist %d anyway",
                        name, target.nixplay_id)

    _LOGGER.debug("uploaded %s (%s, %d bytes)", name, uploaded.content_hash.hex(), uploaded.size)
    return uploaded
