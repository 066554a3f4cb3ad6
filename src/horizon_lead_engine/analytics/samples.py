"""Bounded sample buffers for response times and process memory."""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional

import psutil

BYTES_PER_MB = 1024 * 1024


class ResponseTimeBuffer:
    """Keeps the most recent response-time samples, evicting the oldest."""

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._samples: Deque[float] = deque(maxlen=capacity)

    def add(self, duration_ms: float):
        self._samples.append(duration_ms)

    def average(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def values(self) -> List[float]:
        return list(self._samples)

    def clear(self):
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


@dataclass
class MemorySample:
    """Process memory usage at a point in time, in megabytes."""

    timestamp: datetime
    rss: int
    vms: int
    percent: float

    def to_dict(self) -> Dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "rss": self.rss,
            "vms": self.vms,
            "percent": self.percent,
        }


def current_memory_usage() -> Dict[str, float]:
    """Memory usage of this process (MB, plus percent of system memory)."""
    process = psutil.Process()
    info = process.memory_info()
    return {
        "rss": round(info.rss / BYTES_PER_MB),
        "vms": round(info.vms / BYTES_PER_MB),
        "percent": round(process.memory_percent(), 1),
    }


class MemorySampleWindow:
    """Rolling window of memory samples covering the last ``hours`` hours."""

    def __init__(self, hours: int = 24):
        self.window = timedelta(hours=hours)
        self._samples: Deque[MemorySample] = deque()

    def record(self, now: datetime, usage: Optional[Dict[str, float]] = None) -> MemorySample:
        if usage is None:
            usage = current_memory_usage()
        sample = MemorySample(
            timestamp=now,
            rss=usage.get("rss", 0),
            vms=usage.get("vms", 0),
            percent=usage.get("percent", 0.0),
        )
        self._samples.append(sample)
        self.prune(now)
        return sample

    def prune(self, now: datetime):
        cutoff = now - self.window
        while self._samples and self._samples[0].timestamp <= cutoff:
            self._samples.popleft()

    def samples(self) -> List[MemorySample]:
        return list(self._samples)

    def peak_rss(self) -> int:
        return max((s.rss for s in self._samples), default=0)

    def clear(self):
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)
