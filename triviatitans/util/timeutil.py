# triviatitans/util/timeutil.py
from __future__ import annotations

import time


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds (the unit stored in Game documents)."""
    return int(time.time() * 1000)


def ms_to_sec_ceil(ms: int) -> int:
    if ms <= 0:
        return 0
    return (ms + 999) // 1000
