"""Request execution boundary.

Everything in this package talks to the service through a :class:`Doer`, an
object turning a :class:`requests.Request` into a :class:`requests.Response`.
:class:`SessionDoer` is the plain implementation; :mod:`nixplay.auth` wraps one
with the login session.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

import requests

from nixplay.config import DEFAULT_TIMEOUT
from nixplay.context import RequestContext
from nixplay.errors import TransportError

_LOGGER = logging.getLogger(__name__)


class Doer(Protocol):
    def execute(self, request: requests.Request, ctx: Optional[RequestContext] = None,
                stream: bool = False) -> requests.Response:
        ...


class SessionDoer:
    def __init__(self, session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT, user_agent: Optional[str] = None):
        self.session = session or requests.Session()
        self.timeout = timeout
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def execute(self, request: requests.Request, ctx: Optional[RequestContext] = None,
                stream: bool = False) -> requests.Response:
        timeout = self.timeout
        if ctx is not None:
            ctx.check()
            timeout = ctx.timeout(timeout)
        prepared = self.session.prepare_request(request)
        _LOGGER.debug("%s %s", prepared.method, prepared.url)
        try:
            return self.session.send(prepared, timeout=timeout, stream=stream)
        except requests.RequestException as err:
            raise TransportError(f"{prepared.method} {prepared.url}: {err}") from err


def check_status(response: requests.Response):
    """Raise :class:`TransportError` carrying the body for a non-2xx response."""
    if 200 <= response.status_code < 300:
        return
    body = response.content
    raise TransportError(
        f"http status: {response.status_code} {response.reason or ''}".rstrip()
        + f": body: {body.decode('utf-8', errors='replace')}",
        status_code=response.status_code,
        body=body,
    )


def do_json(doer: Doer, request: requests.Request, ctx: Optional[RequestContext] = None) -> Any:
    response = doer.execute(request, ctx)
    try:
        check_status(response)
        try:
            return response.json()
        except ValueError as err:
            raise TransportError(
                f"invalid JSON in response from {request.url}: {err}",
                status_code=response.status_code,
                body=response.content,
            ) from err
    finally:
        response.close()


def do_discard(doer: Doer, request: requests.Request, ctx: Optional[RequestContext] = None):
    """Execute a request whose response body is of no interest."""
    response = doer.execute(request, ctx)
    try:
        check_status(response)
    finally:
        response.close()


def form_request(url: str, fields: Mapping[str, Any]) -> requests.Request:
    return requests.Request(
        "POST", url, data={k: str(v) for k, v in fields.items()},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
