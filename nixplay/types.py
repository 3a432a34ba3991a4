from __future__ import annotations

import hashlib
from enum import Enum

from nixplay.errors import FormatError, InvalidInputError


class ContainerType(str, Enum):
    """The two kinds of photo groupings the service knows about.

    Albums own their photos. Playlists only associate photos that are owned by
    some album (uploads to a playlist land in the "My Uploads" album).
    """

    ALBUM = "album"
    PLAYLIST = "playlist"

    @classmethod
    def parse(cls, value: str | ContainerType) -> ContainerType:
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(f"invalid container type {value!r}") from None


class _FixedBytes(bytes):
    size = 0

    def __new__(cls, value: bytes):
        if len(value) != cls.size:
            raise FormatError(f"{cls.__name__} must be {cls.size} bytes, got {len(value)}")
        return super().__new__(cls, value)

    def __repr__(self):
        return f"{type(self).__name__}({self.hex()!r})"


class ID(_FixedBytes):
    """Locally derived, stable 32 byte identifier."""

    size = hashlib.sha256().digest_size


class ContentHash(_FixedBytes):
    """16 byte MD5 digest of a photo's content."""

    size = hashlib.md5().digest_size

    @classmethod
    def from_hex(cls, text: str) -> ContentHash:
        if len(text) != cls.size * 2:
            raise FormatError(f"invalid content hash length {len(text)} for {text!r}")
        try:
            return cls(bytes.fromhex(text))
        except ValueError as err:
            raise FormatError(f"failed to decode content hash {text!r}: {err}") from None

    @classmethod
    def of(cls, data: bytes) -> ContentHash:
        return cls(hashlib.md5(data).digest())
