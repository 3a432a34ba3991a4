"""Client for the Nixplay digital photo frame service."""

from nixplay.cache import EntityCache
from nixplay.client import Client
from nixplay.config import ClientOptions
from nixplay.container import Container
from nixplay.content_cache import ContentCache
from nixplay.context import RequestContext
from nixplay.errors import (
    AuthenticationError,
    CancelledError,
    ConsistencyError,
    ContainerNotFoundError,
    DuplicateImageError,
    FormatError,
    InvalidInputError,
    NixplayError,
    TransportError,
)
from nixplay.photo import Photo
from nixplay.types import ID, ContainerType, ContentHash

__all__ = [
    "AuthenticationError",
    "CancelledError",
    "Client",
    "ClientOptions",
    "ConsistencyError",
    "Container",
    "ContainerNotFoundError",
    "ContainerType",
    "ContentCache",
    "ContentHash",
    "DuplicateImageError",
    "EntityCache",
    "FormatError",
    "ID",
    "InvalidInputError",
    "NixplayError",
    "Photo",
    "RequestContext",
    "TransportError",
]
