"""Wall-clock helper. Game documents store epoch-millisecond timestamps."""

import time


def now_ms() -> int:
    return int(time.time() * 1000)
