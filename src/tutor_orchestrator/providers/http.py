"""
HTTP status classification shared by every REST-backed provider.
"""

from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Mapping, Optional

from ..exceptions import (
    NotFoundError,
    OverloadedError,
    ProviderError,
    RateLimitedError,
    UnauthorizedError,
    UnknownProviderError,
)

OVERLOADED_STATUSES = frozenset({502, 503, 504, 529})


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait from a ``Retry-After`` header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def classify_status(
    status: int,
    provider: str,
    message: str = "",
    headers: Optional[Mapping[str, str]] = None,
) -> ProviderError:
    """
    Map an upstream HTTP status to the provider error taxonomy.

    Args:
        status: HTTP status code returned by the backend
        provider: Provider id for the error
        message: Response text, truncated into the error message
        headers: Response headers (``Retry-After`` is honoured for 429)

    Returns:
        ProviderError: The classified error, not raised
    """
    detail = (message or "").strip()[:500]
    text = f"HTTP {status}" + (f": {detail}" if detail else "")

    if status in (401, 403):
        return UnauthorizedError(text, provider=provider, upstream_status=status)
    if status == 404:
        return NotFoundError(text, provider=provider, upstream_status=status)
    if status == 429:
        retry_after = parse_retry_after((headers or {}).get("retry-after"))
        return RateLimitedError(text, provider=provider, retry_after=retry_after, upstream_status=status)
    if status in OVERLOADED_STATUSES:
        return OverloadedError(text, provider=provider, upstream_status=status)
    # Remaining 4xx are request faults that will not change on retry.
    return UnknownProviderError(
        text, provider=provider, upstream_status=status, retryable=status >= 500
    )
