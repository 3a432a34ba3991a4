from __future__ import annotations

import functools

import requests


class NixplayError(Exception):
    """Base class for every error raised by this package.

    Errors pick up the names of the operations they pass through so that a
    failure deep inside an upload reads like
    ``add_photo: upload_to_storage: http status 403``.
    """

    def __init__(self, message: str = "", *, operations: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.operations = list(operations or [])

    def annotate(self, operation: str) -> NixplayError:
        # Nested calls of the same operation (eg. a retry through the same
        # entry point) would otherwise repeat the name.
        if not self.operations or self.operations[0] != operation:
            self.operations.insert(0, operation)
        return self

    def __str__(self):
        return ": ".join(self.operations + [self.message])


class InvalidInputError(NixplayError, ValueError):
    pass


class FormatError(NixplayError, ValueError):
    pass


class TransportError(NixplayError):
    def __init__(self, message: str = "", *, status_code: int | None = None,
                 body: bytes | str | None = None, operations: list[str] | None = None):
        super().__init__(message, operations=operations)
        self.status_code = status_code
        self.body = body


class DuplicateImageError(TransportError):
    pass


class ConsistencyError(NixplayError):
    pass


class CancelledError(NixplayError):
    pass


class ContainerNotFoundError(NixplayError, LookupError):
    pass


class AuthenticationError(NixplayError):
    pass


def annotate(operation: str):
    """Decorator prefixing errors escaping the wrapped call with ``operation``.

    ``requests`` exceptions are converted to :class:`TransportError` so callers
    only ever need to catch :class:`NixplayError`.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except NixplayError as err:
                err.annotate(operation)
                raise
            except requests.RequestException as err:
                raise TransportError(str(err), operations=[operation]) from err
        return wrapper

    return decorator
