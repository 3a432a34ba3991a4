"""Media types accepted by the service, registered with :mod:`mimetypes`."""

from __future__ import annotations

import mimetypes
import os

from nixplay.errors import InvalidInputError

# https://support.nixplay.com/hc/en-us/articles/900002393886
SUPPORTED_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".mp4": "video/mp4",
}

for _ext, _type in SUPPORTED_TYPES.items():
    mimetypes.add_type(_type, _ext)


def type_for_name(name: str) -> str:
    ext = os.path.splitext(name)[1]
    if not ext:
        raise InvalidInputError(f"could not determine file extension for file {name!r}")
    mime_type, _ = mimetypes.guess_type("file" + ext.lower(), strict=False)
    if mime_type is None:
        raise InvalidInputError(f"could not determine mime type for file {name!r}")
    return mime_type
