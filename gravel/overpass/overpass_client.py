# gravel/overpass/overpass_client.py
# -*- coding: utf-8 -*-
"""
Concrete Overpass HTTP client:
- One logical fetch per call: bounds in, RoadGeometry out
- Centralizes HTTP (session, connect retries, User-Agent)
- Owns the throttling policy: backoff on 429, client-wide cooldown
- Decodes 200 bodies on a worker thread
- Emits standardized, high-signal logs

Policy
------
• 429: the client-wide retry counter is incremented. Below the cap
  (OverpassConfig.max_attempts, default 3) the client sleeps
  backoff_base_s * 2**counter (2 s, 4 s) and retries. Reaching the cap puts
  the whole client in cooldown (default 60 s) and raises RateLimited.
• Cooldown: every fetch() raises CooldownActive without touching the
  network until the window elapses; then the counter resets.
• Timeout: retried with the same backoff, bounded by max_attempts per
  fetch; exhausting it raises UpstreamTimeout (no cooldown).
• Any other non-2xx status or transport error: no retry.
• Entry points should call init_logging(); this module only fetches a logger.
"""

from __future__ import annotations

import threading
import time as _time
from typing import Optional

import requests as _req
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from gravel.core.models import FetchState, RoadGeometry, ViewportBounds
from gravel.core.types import Clock, Sleeper
from gravel.infra.logging import get_logger
from gravel.infra.workers import Spawner, offload
from .decoder import extract_polylines
from .overpass_common import (
      OverpassConfig
    , OverpassError
    , RateLimited
    , CooldownActive
    , UpstreamTimeout
    , UpstreamHTTPError
    , DecodeError
    , build_query
    , _extract_error_text
    , _retry_after_seconds
)

_log = get_logger(__name__)


class OverpassClient:
    """
    Overpass adapter with the retry/backoff/cooldown policy kept internal.

    Parameters
    ----------
    cfg : OverpassConfig | None
        Endpoint, timeouts and policy knobs.
    session : requests.Session-like | None
        Injected for tests; built with a connect-retry adapter otherwise.
    clock / sleep : callables
        Monotonic time source and blocking sleep (injectable for tests).
    decode_spawn : callable
        How response decoding is offloaded (default: a fresh worker thread).
    """

    def __init__(
        self,
        cfg: OverpassConfig | None = None,
        *,
        session: Optional[_req.Session] = None,
        clock: Clock = _time.monotonic,
        sleep: Sleeper = _time.sleep,
        decode_spawn: Spawner = offload,
    ) -> None:
        self.cfg = cfg or OverpassConfig()
        self._sess = session if session is not None else self._build_session()
        self._clock = clock
        self._sleep = sleep
        self._decode_spawn = decode_spawn

        self._lock = threading.Lock()
        self._retry_attempts = 0
        self._cooldown_until: Optional[float] = None

        _log.debug(
            "OverpassClient ready url=%s attempts=%s cooldown=%.0fs",
              self.cfg.base_url
            , self.cfg.max_attempts
            , self.cfg.cooldown_s
        )

    # ────────────────────────────────────────────────────────────────────────
    # Lifecycle helpers
    # ────────────────────────────────────────────────────────────────────────
    def _build_session(self) -> _req.Session:
        sess = _req.Session()
        # Status codes are handled by fetch(); urllib3 only re-dials failed connects.
        retries = Retry(
              total=self.cfg.connect_retries
            , connect=self.cfg.connect_retries
            , read=0
            , status=0
            , backoff_factor=0.2
            , allowed_methods=frozenset(["POST"])
            , raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retries)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        sess.headers.update(
            {
                  "User-Agent": self.cfg.user_agent
                , "Accept": "application/json"
            }
        )
        return sess

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._sess.close()

    # ────────────────────────────────────────────────────────────────────────
    # Throttling state
    # ────────────────────────────────────────────────────────────────────────
    @property
    def retry_attempts(self) -> int:
        with self._lock:
            return self._retry_attempts

    @property
    def cooldown_remaining_s(self) -> float:
        with self._lock:
            if self._cooldown_until is None:
                return 0.0
            return max(0.0, self._cooldown_until - self._clock())

    @property
    def in_cooldown(self) -> bool:
        return self.cooldown_remaining_s > 0

    @property
    def state(self) -> FetchState:
        with self._lock:
            until = self._cooldown_until
        if until is not None and until > self._clock():
            return FetchState.cooldown(until)
        return FetchState.idle()

    def _check_cooldown(self) -> None:
        with self._lock:
            if self._cooldown_until is None:
                return
            remaining = self._cooldown_until - self._clock()
            if remaining > 0:
                _log.info(
                    "Fetch SKIPPED - rate limit cooldown (%.0fs remaining of %.0fs)",
                      remaining
                    , self.cfg.cooldown_s
                )
                raise CooldownActive(remaining)
            _log.info("Rate limit cooldown expired; clearing error state")
            self._cooldown_until = None
            self._retry_attempts = 0

    # ────────────────────────────────────────────────────────────────────────
    # Public API
    # ────────────────────────────────────────────────────────────────────────
    def fetch(self, bounds: ViewportBounds) -> RoadGeometry:
        """
        Fetch unpaved road geometry for `bounds`.

        Raises
        ------
        CooldownActive
            Skipped: the client is cooling down after repeated 429s.
        RateLimited
            Third consecutive 429; the client is now in cooldown.
        UpstreamTimeout
            Every allowed attempt timed out.
        UpstreamHTTPError
            Non-retryable HTTP status.
        DecodeError
            200 with a malformed body.
        OverpassError
            Transport-level failure other than a timeout.
        """
        if bounds is None:
            raise ValueError("bounds must not be None")

        self._check_cooldown()

        query = build_query(bounds, self.cfg.server_timeout_s)
        url = self.cfg.base_url
        _log.info(
            "Road fetch requested bounds=%s (~%.1f km², query %d chars)",
              bounds.describe()
            , bounds.approx_area_km2
            , len(query)
        )

        attempt = 0
        while True:
            attempt += 1
            t0 = self._clock()
            try:
                resp = self._sess.post(
                      url
                    , data={"data": query}
                    , headers={"User-Agent": self.cfg.user_agent}
                    , timeout=self.cfg.timeouts
                )
            except _req.Timeout as e:
                dt_ms = (self._clock() - t0) * 1000.0
                if attempt >= self.cfg.max_attempts:
                    _log.error(
                        "HTTP POST %s — timeout after %.0f ms (attempt %d/%d); giving up",
                          url
                        , dt_ms
                        , attempt
                        , self.cfg.max_attempts
                    )
                    raise UpstreamTimeout(f"timed out {attempt} times for {bounds.describe()}") from e
                delay = self.cfg.backoff_delay(attempt)
                _log.warning(
                    "HTTP POST %s — timeout after %.0f ms (attempt %d/%d); retrying in %.1fs",
                      url
                    , dt_ms
                    , attempt
                    , self.cfg.max_attempts
                    , delay
                )
                self._sleep(delay)
                continue
            except _req.RequestException as e:
                dt_ms = (self._clock() - t0) * 1000.0
                _log.error(
                    "HTTP POST %s — request exception %s after %.0f ms (attempt %d)",
                      url
                    , type(e).__name__
                    , dt_ms
                    , attempt
                )
                raise OverpassError(f"{type(e).__name__}: {e}") from e

            dt_ms = (self._clock() - t0) * 1000.0

            # 429: back off, then cool down the whole client
            if resp.status_code == 429:
                with self._lock:
                    self._retry_attempts += 1
                    n = self._retry_attempts
                    if n >= self.cfg.max_attempts:
                        self._cooldown_until = self._clock() + self.cfg.cooldown_s
                if n >= self.cfg.max_attempts:
                    _log.error(
                        "HTTP 429 (%.0f ms, attempt %d/%d) — max attempts reached; "
                        "cooling down for %.0fs",
                          dt_ms
                        , n
                        , self.cfg.max_attempts
                        , self.cfg.cooldown_s
                    )
                    raise RateLimited(f"429 x{n} for {bounds.describe()}")

                delay = self.cfg.backoff_delay(n)
                _log.warning(
                    "HTTP 429 (%.0f ms, attempt %d/%d) — waiting %.1fs before retry (server hint: %s)",
                      dt_ms
                    , n
                    , self.cfg.max_attempts
                    , delay
                    , _retry_after_seconds(resp)
                )
                self._sleep(delay)
                continue

            # 2xx: decode off the calling thread
            if 200 <= resp.status_code < 300:
                with self._lock:
                    self._retry_attempts = 0
                # post() is not streamed: the body was read inside the try above
                body = resp.content
                t_dec = self._clock()
                try:
                    geometry = self._decode_spawn(extract_polylines, body, bounds).result()
                except DecodeError as e:
                    _log.error(
                        "HTTP POST %s — %s but undecodable body (%.0f ms): %s",
                          url
                        , resp.status_code
                        , dt_ms
                        , e
                    )
                    raise
                _log.info(
                    "HTTP POST %s — %s (%.0f ms, %s B, attempt %d) → %d polylines in %.0f ms",
                      url
                    , resp.status_code
                    , dt_ms
                    , len(body)
                    , attempt
                    , len(geometry)
                    , (self._clock() - t_dec) * 1000.0
                )
                return geometry

            # Anything else → fail now
            msg = _extract_error_text(resp)
            retry_after = _retry_after_seconds(resp)
            _log.error(
                "HTTP POST %s — %s (%.0f ms, attempt %d) retry-after=%s body=%s",
                  url
                , resp.status_code
                , dt_ms
                , attempt
                , retry_after
                , msg
            )
            raise UpstreamHTTPError(resp.status_code, msg)


__all__ = ["OverpassClient", "OverpassConfig"]
