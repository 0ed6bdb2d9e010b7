# kurproxy/fetch/client.py
from __future__ import annotations

import logging

import httpx

from kurproxy.config import DEFAULT_USER_AGENT
from kurproxy.exceptions import UpstreamNetworkError, UpstreamStatusError, UpstreamTimeoutError

from .policy import FetchPolicy

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------------------
# Module configuration
# --------------------------------------------------------------------------------------------------

MAX_REDIRECTS = 5
DEFAULT_ACCEPT = "application/json, text/html;q=0.9, */*;q=0.8"

# --------------------------------------------------------------------------------------------------
# Client
# --------------------------------------------------------------------------------------------------


class UpstreamClient:
    """
    Small wrapper around httpx that performs exactly one upstream attempt.

    Flow:
      1) send policy.method to policy.target_url with policy.headers/body,
         bounded by policy.timeout
      2) 2xx      -> return the raw body bytes
         non-2xx  -> UpstreamStatusError(status)
         timeout  -> UpstreamTimeoutError
         other transport failure -> UpstreamNetworkError

    Retries, caching and fallback belong to the engine.
    """

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self._owns_client = http is None
        self._client = http or httpx.Client(
            headers={"User-Agent": self.user_agent, "Accept": DEFAULT_ACCEPT},
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        )

    # ---- core fetch ------------------------------------------------------------------

    def fetch(self, policy: FetchPolicy) -> bytes:
        url = policy.target_url
        try:
            resp = self._client.request(
                policy.method,
                url,
                headers=dict(policy.headers),
                content=policy.body,
                timeout=httpx.Timeout(policy.timeout),
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(
                f"no reply within {policy.timeout:g}s ({type(exc).__name__})", url=url
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamNetworkError(f"{type(exc).__name__}: {exc}", url=url) from exc

        status = int(resp.status_code)
        if not 200 <= status < 300:
            raise UpstreamStatusError(status, url=url)

        log.debug("upstream %s %s -> %s (%d bytes)", policy.method, url, status, len(resp.content))
        return resp.content

    # ----------------------------------------------------------------------------------
    # Context manager
    # ----------------------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> UpstreamClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["UpstreamClient", "MAX_REDIRECTS", "DEFAULT_ACCEPT"]
