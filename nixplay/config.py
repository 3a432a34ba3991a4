from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace

from nixplay.errors import InvalidInputError

DEFAULT_API_URL = "https://api.nixplay.com"
DEFAULT_MONITOR_URL = "https://upload-monitor.nixplay.com"
DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT = 30.0

_ENV_VARS = {
    "username": "NIXPLAY_USERNAME",
    "password": "NIXPLAY_PASSWORD",
    "api_url": "NIXPLAY_API_URL",
    "monitor_url": "NIXPLAY_MONITOR_URL",
    "page_size": "NIXPLAY_PAGE_SIZE",
    "timeout": "NIXPLAY_TIMEOUT",
}


@dataclass(frozen=True)
class ClientOptions:
    """Connection settings for :class:`nixplay.Client`."""

    username: str = ""
    password: str = ""
    api_url: str = DEFAULT_API_URL
    monitor_url: str = DEFAULT_MONITOR_URL
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = "nixplay-python"

    def __post_init__(self):
        if self.page_size <= 0:
            raise InvalidInputError(f"page_size must be positive, got {self.page_size}")
        if self.timeout <= 0:
            raise InvalidInputError(f"timeout must be positive, got {self.timeout}")

    @classmethod
    def from_env(cls, environ=None, **overrides) -> ClientOptions:
        """
        Build options from ``NIXPLAY_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            **overrides: Explicit values, these win over the environment.

        Raises:
            InvalidInputError: If a numeric variable can not be parsed.
        """
        environ = os.environ if environ is None else environ
        types = {f.name: f.type for f in fields(cls)}
        values = {}
        for name, var in _ENV_VARS.items():
            raw = environ.get(var, "").strip()
            if not raw:
                continue
            if types[name] in ("int", int):
                values[name] = _parse_number(var, raw, int)
            elif types[name] in ("float", float):
                values[name] = _parse_number(var, raw, float)
            else:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_credentials(self, username: str, password: str) -> ClientOptions:
        return replace(self, username=username, password=password)


def _parse_number(var, raw, kind):
    try:
        return kind(raw)
    except ValueError:
        raise InvalidInputError(f"{var} must be a number, got {raw!r}") from None
