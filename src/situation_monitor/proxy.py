# src/situation_monitor/proxy.py
"""Outbound HTTP for upstream sources.

:func:`http_get` is the single aiohttp GET every source uses.
:class:`ProxyFallbackAdapter` wraps it for hosts that must be reached through
a URL-prefix proxy: the primary proxy enforces an allowlist and answers
``Domain not allowed`` for hosts it does not know, in which case the request
is repeated once through the secondary proxy.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from .logging_utils import get_logger

log = get_logger("proxy")

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SituationMonitor/2.0)"


class UpstreamError(Exception):
    """An upstream answered, but not with a usable 2xx payload."""

    def __init__(self, source: str, status: int, message: str = "") -> None:
        self.source = source
        self.status = status
        super().__init__(f"{source} status={status} {message}".strip())


@dataclass
class ProxyResponse:
    status: int
    text: str
    url: str
    content_type: str = ""
    via: str = "direct"

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def raise_for_status(self, source: str = "") -> "ProxyResponse":
        if not self.ok:
            raise UpstreamError(source or self.url, self.status, self.text[:80])
        return self

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON from {self.url[:80]}: {e}") from e


async def http_get(
    session: aiohttp.ClientSession,
    url: str,
    *,
    timeout: float = 30.0,
    accept: Optional[str] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> ProxyResponse:
    """GET ``url`` and read the whole body as text.

    Transport failures (``aiohttp.ClientError``, ``asyncio.TimeoutError``)
    propagate; status handling is left to the caller.
    """
    headers = {"User-Agent": user_agent}
    if accept:
        headers["Accept"] = accept
    async with session.get(
        url,
        headers=headers,
        timeout=aiohttp.ClientTimeout(total=timeout),
        allow_redirects=True,
    ) as resp:
        text = await resp.text()
        return ProxyResponse(
            status=resp.status,
            text=text,
            url=url,
            content_type=resp.headers.get("Content-Type", "") if resp.headers else "",
        )


class ProxyFallbackAdapter:
    """Issue a request through a primary proxy with one secondary hop.

    Args:
        session: Shared aiohttp session.
        primary_prefix: URL prefix of the allowlisting proxy.
        fallback_prefix: URL prefix of the open proxy.
        rejection_marker: Body text identifying an allowlist rejection.
        timeout: Default per-hop timeout in seconds; each hop is cut off after
            it, so a hanging primary still leaves time for the secondary.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        primary_prefix: str,
        fallback_prefix: str,
        rejection_marker: str = "Domain not allowed",
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.session = session
        self.primary_prefix = primary_prefix
        self.fallback_prefix = fallback_prefix
        self.rejection_marker = rejection_marker
        self.timeout = timeout
        self.user_agent = user_agent

    @staticmethod
    def build_url(prefix: str, target: str) -> str:
        return prefix + quote(target, safe="")

    def is_rejection(self, resp: ProxyResponse) -> bool:
        return not resp.ok or (
            bool(self.rejection_marker) and self.rejection_marker in resp.text
        )

    async def _hop(
        self, prefix: str, url: str, accept: Optional[str], timeout: float
    ) -> ProxyResponse:
        return await asyncio.wait_for(
            http_get(
                self.session,
                self.build_url(prefix, url),
                timeout=timeout,
                accept=accept,
                user_agent=self.user_agent,
            ),
            timeout=timeout,
        )

    async def request(
        self, url: str, accept: Optional[str] = None, timeout: Optional[float] = None
    ) -> ProxyResponse:
        """Fetch ``url`` via the primary proxy, else via the secondary.

        ``timeout`` overrides the per-hop timeout for this call.  The
        secondary's response is returned whatever its status; if it raises,
        the exception propagates to the caller.
        """
        hop_timeout = self.timeout if timeout is None else timeout
        try:
            resp = await self._hop(self.primary_prefix, url, accept, hop_timeout)
        except Exception as e:
            log.warning(
                "proxy_primary_failed url=%s err=%s", url[:80], e.__class__.__name__
            )
        else:
            if not self.is_rejection(resp):
                resp.via = "primary"
                return resp
            if self.rejection_marker and self.rejection_marker in resp.text:
                log.warning("proxy_primary_rejected url=%s", url[:80])
            else:
                log.warning(
                    "proxy_primary_http status=%s url=%s", resp.status, url[:80]
                )

        resp = await self._hop(self.fallback_prefix, url, accept, hop_timeout)
        resp.via = "secondary"
        log.debug("proxy_secondary status=%s url=%s", resp.status, url[:80])
        return resp
