"""Stable identifiers for entities the service never identifies itself.

Uploads do not return the service's own photo id, and the id of a photo in a
playlist is not unique anyway, so every entity gets a locally derived ID:

* containers hash their kind together with the service's numeric id,
* photos hash their container's ID together with the MD5 of their content.

The service refuses duplicate content within an album so the photo ID is
unique per album. Playlists can reference the same album photo more than once
and those references all share one ID; that is a known limitation.
"""

from __future__ import annotations

import hashlib
import re
import struct
from urllib.parse import urlsplit

from nixplay.errors import FormatError
from nixplay.types import ID, ContainerType, ContentHash

# Object storage keys look like "/<owner>/<owner>_<md5>.<ext>", eg.
# /3293355/3293355_073089b1d67a56c63b989d4e5f660ab8.jpg
_HASH_FROM_URL_PATH = re.compile(r"^/(\d+)/\1_([A-Fa-f0-9]{32})(?:\.[^/]*)?$")


def container_id(container_type: ContainerType, nixplay_id: int) -> ID:
    hasher = hashlib.sha256()
    hasher.update(ContainerType.parse(container_type).value.encode())
    hasher.update(struct.pack("<Q", nixplay_id))
    return ID(hasher.digest())


def photo_id(owner: ID, content_hash: ContentHash) -> ID:
    hasher = hashlib.sha256()
    hasher.update(owner)
    hasher.update(content_hash)
    return ID(hasher.digest())


def content_hash_from_url(url: str) -> ContentHash:
    path = urlsplit(url).path
    match = _HASH_FROM_URL_PATH.match(path)
    if match is None:
        raise FormatError(f"failed to find content hash in photo URL {url!r}")
    return ContentHash.from_hex(match.group(2))


def resolve_content_hash(content_hash: ContentHash | str | None, url: str | None) -> ContentHash:
    """Content hash for a new photo, from the server field or else its URL.

    A photo is never created without its hash; there is no deferred lookup.
    """
    if content_hash:
        if isinstance(content_hash, ContentHash):
            return content_hash
        if isinstance(content_hash, bytes):
            return ContentHash(content_hash)
        return ContentHash.from_hex(content_hash)
    if not url:
        raise FormatError("content hash or photo URL must be provided")
    return content_hash_from_url(url)
