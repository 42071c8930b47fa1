import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, Mapping

from dateutil.parser import isoparse

RETRY_AFTER_HEADER = "Retry-After"
MAX_BACKOFF_WAIT_IN_SECONDS = 60


def parse_retry_after(header_value: str) -> float | None:
    """Parse a retry header value and return the wait in seconds.

    Accepts delta-seconds ("30"), an HTTP-date ("Wed, 21 Oct 2015 07:28:00 GMT")
    or an ISO timestamp ("2023-12-01T12:00:00Z"). Dates in the past yield 0.
    Returns None when the value cannot be parsed.
    """
    header_value = header_value.strip()
    if not header_value:
        return None

    try:
        seconds = float(header_value)
    except ValueError:
        pass
    else:
        return seconds if seconds >= 0 else None

    parsed_date: datetime | None
    try:
        parsed_date = parsedate_to_datetime(header_value)
    except (TypeError, ValueError):
        parsed_date = None

    if parsed_date is None:
        try:
            parsed_date = isoparse(header_value)
        except ValueError:
            return None

    if parsed_date.tzinfo is None:
        parsed_date = parsed_date.replace(tzinfo=timezone.utc)
    diff = (parsed_date - datetime.now(timezone.utc)).total_seconds()
    return max(diff, 0.0)


def get_retry_after(
    headers: Mapping[str, str],
    header_names: Iterable[str] = (RETRY_AFTER_HEADER,),
) -> float | None:
    # Plain mappings are matched case-insensitively, same as httpx.Headers.
    lowered = {key.lower(): value for key, value in headers.items()}
    for header_name in header_names:
        if header_value := lowered.get(header_name.lower()):
            sleep_time = parse_retry_after(header_value)
            if sleep_time is not None:
                return sleep_time
    return None


def exponential_backoff(
    attempts_made: int,
    base_delay: float,
    jitter_ratio: float,
    max_backoff_wait: float,
) -> float:
    backoff = base_delay * (2 ** (attempts_made - 1))
    jitter = (backoff * jitter_ratio) * random.choice([1, -1])
    return min(backoff + jitter, max_backoff_wait)


def polling_delay(
    retry_after: float | None,
    default_interval: float,
    max_retry_after: float,
    polling_interval: float | None = None,
    min_interval: float = 0.0,
) -> float:
    """Seconds to wait before the next status check.

    The server hint wins over the default interval. It is capped by
    `max_retry_after` and never drops below `min_interval`, so a hint of zero
    or a date in the past does not turn waiting into back-to-back polls. An
    explicit `polling_interval` is a further floor under the hint.
    """
    if retry_after is None:
        delay = default_interval if polling_interval is None else polling_interval
    else:
        delay = max(min(retry_after, max_retry_after), min_interval)
        if polling_interval is not None:
            delay = max(delay, polling_interval)
    return max(delay, 0.0)
