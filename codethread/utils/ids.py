from __future__ import annotations

import threading
import time
import uuid


_clock_lock = threading.Lock()
_last_timestamp = 0.0


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def now() -> float:
    """返回单调不减的 epoch 秒，保证后创建的对象时间戳不早于先创建的。"""
    global _last_timestamp
    with _clock_lock:
        current = time.time()
        if current <= _last_timestamp:
            current = _last_timestamp + 1e-6
        _last_timestamp = current
        return current
