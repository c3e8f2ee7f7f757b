from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

PLACEHOLDER = "__CACHE_VERSION__"


def build_version(now: Optional[datetime] = None) -> str:
    """Build timestamp used as the service worker cache name suffix, e.g. 20260131T154500Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def stamp(path: Path, version: Optional[str] = None) -> str:
    """
    Replace every cache-version placeholder in a built sw.js.

    Returns the version written. Raises FileNotFoundError if the file is
    missing and ValueError if it has no placeholder (already stamped, or the
    wrong file).
    """
    version = version or build_version()
    text = path.read_text(encoding="utf-8")

    if PLACEHOLDER not in text:
        raise ValueError(f"{path} has no {PLACEHOLDER} placeholder")

    path.write_text(text.replace(PLACEHOLDER, version), encoding="utf-8")
    logger.info("stamped %s with cache version %s", path, version)
    return version


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Stamp the service worker cache version.")
    parser.add_argument("path", nargs="?", default="dist/sw.js", help="Built service worker (default: dist/sw.js)")
    parser.add_argument("--version", default=None, help="Explicit version instead of the build timestamp")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    try:
        version = stamp(Path(args.path), args.version)
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1

    print(f"Service worker cache version: {version}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
