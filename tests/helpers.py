from __future__ import annotations

import time
from typing import Any, Callable, Dict

import orjson


def encode(payload: Dict[str, Any]) -> bytes:
    return orjson.dumps(payload)


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
