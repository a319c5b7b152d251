from __future__ import annotations

import time


def now_ms() -> int:
    """Current wall clock as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000
