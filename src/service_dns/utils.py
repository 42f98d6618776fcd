import hashlib
import math
import random
import re
import time
from typing import Callable, Iterable, Optional


def retry_with_backoff(attempts: int = 3, delay: float = 0.2):
    """Simple retry decorator with exponential backoff and jitter."""
    def decorator(fn: Callable):
        def wrapped(*args, **kwargs):
            for i in range(attempts):
                try:
                    return fn(*args, **kwargs)
                except Exception:
                    if i == attempts - 1:
                        raise
                    sleep_time = delay * (2 ** i) + random.random() * 0.1
                    time.sleep(sleep_time)
        return wrapped
    return decorator


_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)')

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'μs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}


def parse_duration(value: str) -> float:
    """Parse a duration string such as '90s', '1m30s' or '1.5h' into seconds.

    A bare '0' is accepted; any other unit-less number is rejected.
    """
    s = value.strip()
    sign = 1.0
    if s[:1] in ('+', '-'):
        sign = -1.0 if s[0] == '-' else 1.0
        s = s[1:]
    if s == '0':
        return 0.0
    if not s:
        raise ValueError(f'invalid duration {value!r}')
    total = 0.0
    pos = 0
    while pos < len(s):
        m = _DURATION_PART.match(s, pos)
        if not m:
            raise ValueError(f'invalid duration {value!r}')
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if not math.isfinite(total):
        raise ValueError(f'duration {value!r} is out of range')
    return sign * total


def split_csv(value: Optional[str]) -> list:
    """Split a comma separated value, dropping whitespace and empty entries."""
    if not value:
        return []
    return [part.strip() for part in value.split(',') if part.strip()]


def make_signature(endpoints: Iterable) -> str:
    """Stable digest of a record set, independent of input order."""
    lines = sorted(
        f"{ep.dns_name}|{ep.record_type}|{ep.set_identifier}|{ep.record_ttl}|{','.join(sorted(ep.targets))}"
        for ep in endpoints
    )
    return hashlib.sha256('\n'.join(lines).encode('utf-8')).hexdigest()
