from __future__ import annotations

import random
import re
import threading
import time
from typing import Callable, Optional

DEFAULT_PREFIX = "LD"
TIMESTAMP_WIDTH = 8
SUFFIX_WIDTH = 4

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_PREFIX_RE = re.compile(r"^[A-Z]{1,6}$")


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("Cannot encode a negative number.")
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_ALPHABET[rem])
    return "".join(reversed(out))


def is_valid_prefix(prefix: str) -> bool:
    return bool(_PREFIX_RE.match(prefix))


def order_id_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(prefix)}-[A-Z0-9]{{{TIMESTAMP_WIDTH}}}-[A-Z0-9]{{{SUFFIX_WIDTH}}}$"
    )


def is_valid_order_id(value: object, prefix: str = DEFAULT_PREFIX) -> bool:
    return isinstance(value, str) and bool(order_id_pattern(prefix).match(value))


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class OrderIdGenerator:
    """Generates ``PREFIX-TTTTTTTT-RRRR`` order ids.

    ``TTTTTTTT`` is the millisecond clock in base 36 and never repeats within
    one generator; ``RRRR`` is random and only there to keep ids from separate
    processes apart. Not suitable where ids must be unguessable.
    """

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        *,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not is_valid_prefix(prefix):
            raise ValueError(f"Invalid order id prefix: {prefix!r}")
        self.prefix = prefix
        self._clock = clock or _epoch_ms
        self._rng = rng or random.Random()
        self._last_ms = -1
        self._lock = threading.Lock()

    @property
    def pattern(self) -> re.Pattern[str]:
        return order_id_pattern(self.prefix)

    def generate(self) -> str:
        with self._lock:
            ms = max(self._clock(), self._last_ms + 1)
            self._last_ms = ms
        stamp = to_base36(ms).rjust(TIMESTAMP_WIDTH, "0")
        suffix = "".join(self._rng.choice(_ALPHABET) for _ in range(SUFFIX_WIDTH))
        return f"{self.prefix}-{stamp}-{suffix}"
