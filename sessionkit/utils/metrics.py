"""Prometheus metrics definitions for the session core."""
from __future__ import annotations

from prometheus_client import Counter

SESSIONS_ISSUED = Counter(
    "session_tokens_issued_total",
    "Session tokens issued",
    ["reason"],  # login/refresh/touch
)

SESSION_DECODE_FAILURES = Counter(
    "session_decode_failures_total",
    "Session tokens rejected by the codec",
    ["kind"],  # malformed/bad_signature/expired
)

REFRESH_REDEMPTIONS = Counter(
    "refresh_token_redemptions_total",
    "Refresh token redemption attempts",
    ["outcome"],  # success/unknown/stolen/expired
)

CSRF_REJECTIONS = Counter(
    "csrf_rejections_total",
    "Requests rejected by the CSRF check",
    ["kind"],  # missing/mismatch
)

STORE_ERRORS = Counter(
    "refresh_store_errors_total",
    "Refresh token store failures",
    ["kind", "operation"],
)
