from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .api import ApiResult, api_request, format_api_error

logger = logging.getLogger(__name__)


class PageState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class PageSnapshot:
    state: PageState
    data: Optional[dict] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


Fetcher = Callable[[], Awaitable[ApiResult]]
Listener = Callable[[PageSnapshot], None]


class PageLoader:
    """
    Drives one page's read request through loading -> ready | error.

    - mount() issues the request
    - retry() re-issues it (manual affordance; nothing retries on its own)
    - unmount() detaches the page; a response that lands afterwards is dropped
      and listeners are not called again
    No caching, no optimistic updates.
    """

    def __init__(self, fetch: Fetcher, *, listener: Optional[Listener] = None) -> None:
        self._fetch = fetch
        self._listeners: List[Listener] = [listener] if listener else []
        self._mounted = False
        self._generation = 0
        self.snapshot = PageSnapshot(state=PageState.IDLE)

    @classmethod
    def for_path(
        cls,
        client: httpx.AsyncClient,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        listener: Optional[Listener] = None,
    ) -> "PageLoader":
        async def fetch() -> ApiResult:
            return await api_request(client, "GET", path, params=params)

        return cls(fetch, listener=listener)

    # -----------------------------
    # Lifecycle
    # -----------------------------

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def state(self) -> PageState:
        return self.snapshot.state

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def mount(self) -> PageSnapshot:
        self._mounted = True
        return await self._load()

    async def retry(self) -> PageSnapshot:
        if not self._mounted:
            return self.snapshot
        return await self._load()

    def unmount(self) -> None:
        self._mounted = False
        # Invalidate whatever request is in flight.
        self._generation += 1

    # -----------------------------
    # Internal
    # -----------------------------

    def _set(self, snapshot: PageSnapshot) -> None:
        self.snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    async def _load(self) -> PageSnapshot:
        self._generation += 1
        generation = self._generation
        self._set(PageSnapshot(state=PageState.LOADING))

        code, text, data = await self._fetch()

        if not self._mounted or generation != self._generation:
            logger.debug("discarding stale page result (status=%s)", code)
            return self.snapshot

        if 200 <= code < 300:
            self._set(PageSnapshot(state=PageState.READY, data=data, status_code=code))
        else:
            self._set(
                PageSnapshot(
                    state=PageState.ERROR,
                    error=format_api_error(code, text, data),
                    status_code=code,
                )
            )
        return self.snapshot
