from __future__ import annotations

import logging
from typing import Optional

import requests
from requests.cookies import RequestsCookieJar

from nixplay.config import DEFAULT_API_URL
from nixplay.context import RequestContext
from nixplay.errors import AuthenticationError, annotate
from nixplay.transport import Doer, form_request

_LOGGER = logging.getLogger(__name__)

CSRF_COOKIE = "prod.csrftoken"
COOKIE_DOMAIN_SUFFIX = ".nixplay.com"
WEB_APP_ORIGIN = "https://app.nixplay.com"


def parse_login_errors(errors) -> list[str]:
    """Turn the ``errors`` field of a login response into messages.

    A successful login reports an empty list. A failed one reports a mapping
    of form field to ``{"messages": [[...], ...]}``.
    """
    if not errors:
        return []
    if not isinstance(errors, dict):
        return [f"issue with login: {errors}"]
    messages = []
    for field, details in errors.items():
        if field == "email":
            field = "username"
        for group in (details or {}).get("messages", []):
            for message in group:
                if field == "__all__":
                    messages.append(f"issue with login: {message}")
                else:
                    messages.append(f"issue with login property {field!r}: {message}")
    return messages


class AuthorizedDoer:
    """Doer that carries the login cookies and CSRF token on every request."""

    def __init__(self, doer: Doer, csrf_token: str, cookies: RequestsCookieJar,
                 token: str = ""):
        self.doer = doer
        self.csrf_token = csrf_token
        self.cookies = cookies
        self.token = token

    @classmethod
    @annotate("login")
    def login(cls, doer: Doer, username: str, password: str,
              api_url: str = DEFAULT_API_URL,
              ctx: Optional[RequestContext] = None) -> AuthorizedDoer:
        if not username or not password:
            raise AuthenticationError("username and password are required")

        request = form_request(f"{api_url}/www-login/", {"email": username, "password": password})
        response = doer.execute(request, ctx)
        try:
            if response.status_code != 200:
                raise AuthenticationError(
                    f"failed to log in to Nixplay: http status {response.status_code}")

            jar = RequestsCookieJar()
            for cookie in response.cookies:
                if cookie.domain.endswith(COOKIE_DOMAIN_SUFFIX):
                    jar.set_cookie(cookie)
            csrf_token = jar.get(CSRF_COOKIE)

            try:
                body = response.json()
            except ValueError as err:
                raise AuthenticationError(f"failed to parse login response body: {err}") from err
        finally:
            response.close()

        problems = parse_login_errors(body.get("errors"))
        if problems:
            raise AuthenticationError("; ".join(problems))
        if not csrf_token:
            raise AuthenticationError("CSRF token not set in log in response")

        _LOGGER.debug("logged in as %s", username)
        return cls(doer, csrf_token, jar, token=body.get("token", ""))

    def execute(self, request: requests.Request, ctx: Optional[RequestContext] = None,
                stream: bool = False) -> requests.Response:
        cookies = RequestsCookieJar()
        cookies.update(self.cookies)
        if request.cookies:
            cookies.update(request.cookies)
        request.cookies = cookies
        request.headers = dict(request.headers or {})
        request.headers["X-CSRFToken"] = self.csrf_token
        request.headers["Origin"] = WEB_APP_ORIGIN
        request.headers["Referer"] = WEB_APP_ORIGIN + "/"

        response = self.doer.execute(request, ctx, stream=stream)
        if response.cookies:
            self.cookies.update(response.cookies)
        return response
