"""Record identifier generation.

Identifiers look like ``processed_1726343251632_k3j9x0a1b``: a prefix, the
epoch time in milliseconds and nine base-36 characters. The clock and the
random source are injectable so tests can pin both.
"""
from __future__ import annotations

import random
import string
import time
from typing import Callable

SUCCESS_PREFIX = "processed"
FAILURE_PREFIX = "error"

_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


class IdGenerator:
    """Builds ``<prefix>_<epoch-ms>_<suffix>`` identifiers."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()

    def new_id(self, prefix: str) -> str:
        millis = int(self._clock() * 1000)
        suffix = "".join(self._rng.choice(_ALPHABET) for _ in range(_SUFFIX_LENGTH))
        return f"{prefix}_{millis}_{suffix}"

    def success_id(self) -> str:
        return self.new_id(SUCCESS_PREFIX)

    def failure_id(self) -> str:
        return self.new_id(FAILURE_PREFIX)
