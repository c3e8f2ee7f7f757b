"""
Terminal admin dashboard.

Operator notes:
- Reads DASHBOARD_API_BASE / DASHBOARD_HTTP_TIMEOUT from the environment (or .env).
- --member-id must be a STAFF or ADMIN member; it is sent as X-Member-Id.
- Nothing retries on its own: on error you are asked whether to retry.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from membership.client.api import client_from_settings
from membership.client.pages import PageLoader, PageSnapshot, PageState
from membership.config import load_settings


def render(snapshot: PageSnapshot) -> None:
    if snapshot.state == PageState.LOADING:
        print("Loading health summary...")
        return
    if snapshot.state == PageState.ERROR:
        print(f"\n{snapshot.error}")
        return
    if snapshot.state != PageState.READY or snapshot.data is None:
        return

    report = snapshot.data
    store = report.get("store") or {}
    counts = report.get("counts")

    print("\n" + "=" * 50)
    print(f" MEMBERSHIP HEALTH: {str(report.get('status', '?')).upper()}")
    print("=" * 50)
    print(f"Checked at:     {report.get('checked_at')}")
    if store.get("reachable"):
        print(f"Database:       reachable ({store.get('latency_ms')} ms)")
    else:
        print("Database:       UNREACHABLE")

    if counts:
        print(f"Active members: {counts.get('active_members')}")
        print(f"Upcoming ({report.get('upcoming_days')}d): {counts.get('upcoming_events')}")
        print(f"Unread notices: {counts.get('unread_announcements')}")
        print(f"Audit ({report.get('recent_audit_days')}d):    {counts.get('recent_audit_entries')}")
    else:
        print("Counts:         unavailable")

    for warning in report.get("warnings") or []:
        print(f"  ! {warning}")
    print()


async def dashboard(member_id: int, base: Optional[str]) -> int:
    settings = load_settings()
    if base:
        settings.dashboard_api_base = base.rstrip("/")

    async with client_from_settings(settings, member_id=member_id) as client:
        page = PageLoader.for_path(client, "/admin/health", listener=render)
        snapshot = await page.mount()
        try:
            while snapshot.state == PageState.ERROR:
                answer = input("Retry? [y/N]: ").strip().lower()
                if answer not in ("y", "yes"):
                    break
                snapshot = await page.retry()
        finally:
            page.unmount()

    return 0 if snapshot.state == PageState.READY else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Show the membership health summary.")
    parser.add_argument("--member-id", type=int, required=True, help="Acting STAFF/ADMIN member id")
    parser.add_argument("--base", default=None, help="API base URL (defaults to DASHBOARD_API_BASE)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    try:
        code = asyncio.run(dashboard(args.member_id, args.base))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
