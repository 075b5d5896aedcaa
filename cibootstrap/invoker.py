"""
HTTP invocation with a single followed redirect.

Jenkins sits behind routers and OAuth proxies that answer with a 302 to
the real endpoint, sometimes over a self-signed certificate. Automatic
redirects are disabled so a POST is replayed as a POST against the new
location, at most once.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
from urllib.parse import urljoin

import requests

from .errors import (
    HttpStatusError,
    MissingLocationError,
    RedirectLoopError,
    TransportError,
)
from .logger import get_logger

logger = get_logger()

MAX_ATTEMPTS = 2
REDIRECT_STATUS = 302


@dataclass
class RetryableRequest:
    """A request plus the redirect state of the invocation that owns it."""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    attempt: int = 0
    redirected: bool = False

    def follow(self, response: requests.Response) -> None:
        """Retarget this request at the response's Location header."""
        if self.redirected:
            logger.warning("Refusing to follow a second redirect", url=self.url, status=response.status_code)
            raise RedirectLoopError(self.url)
        location = response.headers.get("Location")
        if not location:
            logger.warning("Redirect without location header", url=self.url, status=response.status_code)
            raise MissingLocationError(self.url, response.status_code)
        self.redirected = True
        self.url = urljoin(self.url, location)


class HttpInvoker:
    """Executes requests with at most MAX_ATTEMPTS tries and one redirect.

    Every attempt opens its own session and closes it before returning.
    With insecure=True certificate and hostname checks are disabled on
    those sessions only; nothing process-wide is modified.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        insecure: bool = False,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.timeout = timeout
        self.insecure = insecure
        self.session_factory = session_factory

    def _open_session(self) -> requests.Session:
        session = self.session_factory()
        if self.insecure:
            session.verify = False
        return session

    def invoke(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> requests.Response:
        """Send the request, following one 302.

        Raises:
            HttpStatusError: status outside [200, 300)
            RedirectLoopError: a second redirect in the same call
            MissingLocationError: redirect without a Location header
            TransportError: connection, timeout or TLS failure
        """
        request = RetryableRequest(url=url, method=method.upper(), headers=dict(headers or {}), body=body)
        response = None
        while request.attempt < MAX_ATTEMPTS:
            request.attempt += 1
            response = self._send(request)
            if response is None:
                continue
            status = response.status_code
            reason = response.reason or ""
            logger.info(f"Response from {request.url} is {status} {reason}".rstrip())
            if status == REDIRECT_STATUS:
                request.follow(response)
            elif status < 200 or status >= 300:
                logger.warning("Request failed", url=request.url, method=request.method, status=status, reason=reason)
                raise HttpStatusError(status, reason, request.url)
            else:
                return response
        return response

    def _send(self, request: RetryableRequest) -> Optional[requests.Response]:
        """One attempt. Returns None when a redirect was raised and followed."""
        logger.record_api_call()
        with self._open_session() as session:
            try:
                return session.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    data=request.body,
                    timeout=self.timeout,
                    allow_redirects=False,
                )
            except requests.exceptions.TooManyRedirects as e:
                if e.response is None:
                    raise TransportError(request.url, e) from e
                request.follow(e.response)
                return None
            except requests.exceptions.RequestException as e:
                logger.error("Request error", url=request.url, method=request.method, error=str(e))
                raise TransportError(request.url, e) from e
