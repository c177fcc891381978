"""HTTP client that sends requests to a Prometheus server."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import requests
from requests.structures import CaseInsensitiveDict

# Connect timeout in seconds; reads are not limited unless the caller asks.
DEFAULT_TIMEOUT: tuple[float, float | None] = (30.0, None)

_PATH_SAFE = "/:@!$&'()*+,;="

_default_session: requests.Session | None = None
_default_session_lock = threading.Lock()


def default_session() -> requests.Session:
    """Return the session shared by clients that were given none."""
    global _default_session
    with _default_session_lock:
        if _default_session is None:
            _default_session = requests.Session()
        return _default_session


@dataclass
class Config:
    """Settings for a new client."""

    address: str = ""
    session: requests.Session | None = None

    def session_or_default(self) -> requests.Session:
        """Return the configured session, or the shared default one."""
        return self.session if self.session is not None else default_session()


@dataclass
class Response:
    """Status, body and headers of a completed request."""

    status_code: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)


def _clean(path: str) -> str:
    if not path:
        return "."
    rooted = path.startswith("/")
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append("..")
            continue
        parts.append(segment)
    result = "/".join(parts)
    if rooted:
        result = "/" + result
    return result or "."


def _join(*elements: str) -> str:
    joined = "/".join(e for e in elements if e)
    return _clean(joined) if joined else ""


class Client:
    """Builds endpoint URLs below a base address and performs requests.

    Safe to share between threads.
    """

    def __init__(self, config: Config) -> None:
        try:
            parts = urlsplit(config.address)
            parts.port  # validates the port part
        except ValueError as exc:
            raise ValueError(f"invalid address {config.address!r}: {exc}") from exc
        self._endpoint = parts._replace(path=unquote(parts.path).rstrip("/"))
        self._session = config.session_or_default()

    def url(self, ep: str, args: Mapping[str, str] | None = None) -> str:
        """Return the URL of endpoint ``ep``, with ``:name`` placeholders filled from ``args``."""
        path = _join(self._endpoint.path, ep)
        for name, value in (args or {}).items():
            path = path.replace(":" + name, value)
        if self._endpoint.netloc and path and not path.startswith("/"):
            path = "/" + path
        return urlunsplit(self._endpoint._replace(path=quote(path, safe=_PATH_SAFE)))

    def do(
        self,
        method: str,
        url: str,
        *,
        data: str | bytes | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | tuple[float, float | None] | None = None,
    ) -> Response:
        """Send a request and return its response with the whole body read.

        Transport failures raise the corresponding ``requests`` exception.
        """
        resp = self._session.request(
            method,
            url,
            data=data,
            headers=dict(headers) if headers else None,
            timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        )
        with resp:
            body = resp.content
        return Response(resp.status_code, body, CaseInsensitiveDict(resp.headers))