# gravel/overpass/overpass_common.py
# -*- coding: utf-8 -*-
"""
Common pieces for the Overpass client stack:
- Error classes
- OverpassConfig (endpoint, timeouts, retry/cooldown knobs, User-Agent)
- Query builder (bounding box + unpaved-surface predicate)
- Helpers for Retry-After and response error extraction

Pure infra: no HTTP calls here. The HTTP logic lives in
gravel/overpass/overpass_client.py.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Optional, Tuple

from dotenv import load_dotenv

from gravel.core.models import ViewportBounds
from gravel.infra.logging import get_logger

_log = get_logger(__name__)


# ────────────────────────────────────────────────────────────────────────────────
# Errors
# ────────────────────────────────────────────────────────────────────────────────

class OverpassError(Exception):
    """Base class for every fetch failure reported to the coordinator."""


class RateLimited(OverpassError):
    """HTTP 429 seen on every allowed attempt; the client entered cooldown."""


class CooldownActive(OverpassError):
    """Fetch skipped without touching the network because of a cooldown."""

    def __init__(self, remaining_s: float) -> None:
        super().__init__(f"rate-limit cooldown active ({remaining_s:.0f}s remaining)")
        self.remaining_s = remaining_s


class UpstreamTimeout(OverpassError):
    """Every allowed attempt timed out."""


class UpstreamHTTPError(OverpassError):
    """Non-retryable, non-2xx status."""

    def __init__(self, status: int, detail: str = "") -> None:
        super().__init__(f"HTTP {status}: {detail}" if detail else f"HTTP {status}")
        self.status = status
        self.detail = detail


class DecodeError(OverpassError):
    """Response body is not the expected JSON document."""


# ────────────────────────────────────────────────────────────────────────────────
# Retry-After helper (RFC 7231)
# ────────────────────────────────────────────────────────────────────────────────

def _retry_after_seconds(resp) -> Optional[float]:
    """
    Retry-After header as seconds (delta-seconds or HTTP-date), else None.
    """
    ra = getattr(resp, "headers", {}).get("Retry-After")
    if not ra:
        return None
    try:
        return float(ra)
    except (ValueError, TypeError):
        pass
    try:
        dt = datetime.strptime(ra, "%a, %d %b %Y %H:%M:%S %Z").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _extract_error_text(resp) -> str:
    """Best-effort, short error text from an HTTP response."""
    text = getattr(resp, "text", "") or ""
    return text[:500] if len(text) < 1000 else text[:200] + " …"


# ────────────────────────────────────────────────────────────────────────────────
# Query
# ────────────────────────────────────────────────────────────────────────────────

HIGHWAY_TAGS: Tuple[str, ...] = (
      "track", "path", "cycleway", "footway", "bridleway", "unclassified"
    , "tertiary", "secondary", "primary", "trunk", "residential", "service", "road"
)

SURFACE_TAGS: Tuple[str, ...] = (
      "gravel", "compacted", "fine_gravel", "pebblestone", "ground", "earth"
    , "dirt", "grass", "sand", "unpaved", "cobblestone"
)


def build_query(bounds: ViewportBounds, server_timeout_s: int = 25) -> str:
    """
    Overpass QL selecting unpaved ways inside `bounds`, with full geometry.
    """
    if bounds is None:
        raise ValueError("bounds must not be None")

    highway = "|".join(HIGHWAY_TAGS)
    surface = "|".join(SURFACE_TAGS)
    bbox = f"{bounds.south:.6f},{bounds.west:.6f},{bounds.north:.6f},{bounds.east:.6f}"
    return (
        f"[out:json][timeout:{int(server_timeout_s)}];\n"
        "(\n"
        f'  way["highway"~"^({highway})$"]["surface"~"^({surface})$"]({bbox});\n'
        ");\n"
        "out geom;\n"
    )


# ────────────────────────────────────────────────────────────────────────────────
# Config
# ────────────────────────────────────────────────────────────────────────────────

class OverpassConfig:
    """
    Configuration bundle for the Overpass client.

    Parameters
    ----------
    base_url : str | None
        Interpreter endpoint. If None, reads GRAVEL_OVERPASS_URL, else the
        public overpass-api.de instance.
    connect_timeout_s / read_timeout_s : float
        Per-request timeouts; a timeout counts as a transient failure.
    max_attempts : int
        Attempts per logical fetch for throttling/timeouts (default 3).
    backoff_base_s : float
        Delay before retry n is backoff_base_s * 2**n (2 s, 4 s, ...).
    cooldown_s : float
        Window during which every fetch is skipped after repeated 429s.
    connect_retries : int
        urllib3-level retries for failed TCP connects only.
    app_version : str | None
        Included in the User-Agent. If None, reads GRAVEL_APP_VERSION.
    contact_url : str
        Contact URL required by the Overpass usage policy.
    """

    def __init__(
        self,
        base_url: str | None = None,
        connect_timeout_s: float = 10.0,
        read_timeout_s: float = 30.0,
        max_attempts: int = 3,
        backoff_base_s: float = 1.0,
        cooldown_s: float = 60.0,
        connect_retries: int = 1,
        app_version: str | None = None,
        contact_url: str = "https://github.com/Aoli/gravel_biking",
        server_timeout_s: int = 25,
    ) -> None:
        load_dotenv()

        self.base_url = (
            base_url
            or os.getenv("GRAVEL_OVERPASS_URL")
            or "https://overpass-api.de/api/interpreter"
        ).rstrip("/")
        self.connect_timeout_s = float(connect_timeout_s)
        self.read_timeout_s = float(read_timeout_s)
        self.max_attempts = int(max_attempts)
        self.backoff_base_s = float(backoff_base_s)
        self.cooldown_s = float(cooldown_s)
        self.connect_retries = int(connect_retries)
        self.app_version = (app_version if app_version is not None else os.getenv("GRAVEL_APP_VERSION", "")).strip()
        self.contact_url = str(contact_url)
        self.server_timeout_s = int(server_timeout_s)

        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

        _log.info(
            "OverpassConfig init: url=%s timeouts=(%.1f,%.1f)s attempts=%s backoff=%.1fs "
            "cooldown=%.0fs ua=%s",
            self.base_url,
            self.connect_timeout_s,
            self.read_timeout_s,
            self.max_attempts,
            self.backoff_base_s,
            self.cooldown_s,
            self.user_agent,
        )

    @property
    def user_agent(self) -> str:
        version = f"/{self.app_version}" if self.app_version else ""
        return f"GravelFirst{version} (+{self.contact_url})"

    @property
    def timeouts(self) -> Tuple[float, float]:
        """(connect_timeout_s, read_timeout_s) for requests."""
        return (self.connect_timeout_s, self.read_timeout_s)

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the `attempt`-th failed attempt (1-based): base * 2**attempt."""
        return self.backoff_base_s * (2 ** attempt)
