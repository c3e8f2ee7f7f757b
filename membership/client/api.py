from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

# NOTE:
# Keep this module free of server imports (models, repositories).
# It is the single source of truth for dashboard->backend HTTP behavior.

DEFAULT_TIMEOUT_S = 20.0
ACTOR_HEADER = "X-Member-Id"

ApiResult = Tuple[int, str, Optional[dict]]


def make_client(
    base_url: str,
    *,
    member_id: Optional[int] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    AsyncClient bound to the API base. member_id becomes the X-Member-Id
    header on every request.
    """
    headers = {"Accept": "application/json", "User-Agent": "membership-dashboard/1.0"}
    if member_id is not None:
        headers[ACTOR_HEADER] = str(member_id)
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers=headers,
        timeout=float(timeout),
        transport=transport,
    )


def client_from_settings(settings: Settings, *, member_id: Optional[int] = None) -> httpx.AsyncClient:
    return make_client(settings.dashboard_api_base, member_id=member_id, timeout=settings.http_timeout_s)


def _safe_json(r: httpx.Response) -> Optional[dict]:
    """
    Best-effort JSON parse:
      - returns dict if payload is a dict
      - returns None if not JSON or not dict
    """
    try:
        payload = r.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def truncate(s: str, limit: int = 500) -> str:
    if not s:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 3)] + "..."


def format_api_error(code: int, text: str, data: Optional[dict]) -> str:
    detail = data.get("detail") if isinstance(data, dict) else None
    if detail:
        return f"Error ({code}): {detail}"
    return f"Error ({code}): {truncate(text)}"


async def api_request(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> ApiResult:
    """
    Low-level request helper used by every page.
    Returns: (status_code, response_text, json_dict_or_none)

    Never raises for transport problems:
      - timeout -> 408
      - network error -> 503
    """
    m = (method or "GET").strip().upper()
    p = path if (path or "").startswith("/") else f"/{path}"

    kwargs: Dict[str, Any] = {"params": params, "json": json}
    if timeout is not None:
        kwargs["timeout"] = float(timeout)

    try:
        r = await client.request(m, p, **kwargs)
    except httpx.TimeoutException:
        return 408, "Request timed out contacting API.", None
    except httpx.RequestError as e:
        return 503, f"Network error contacting API: {e}", None

    return r.status_code, r.text, _safe_json(r)
