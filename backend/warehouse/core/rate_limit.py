"""ตัวจำกัดอัตราคำขอแบบ sliding window (เก็บในหน่วยความจำ)"""

import time
from collections import deque
from typing import Deque, Dict, Optional


class SlidingWindowRateLimiter:
    """
    จำกัดคำขอไม่เกิน limit ครั้งภายใน window_seconds ต่อคีย์

    คีย์ที่ไม่มีคำขอเหลือในหน้าต่างเวลาจะถูกลบออก (กวาดทุกรอบ window_seconds)
    """

    def __init__(self, limit: int, window_seconds: float):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep: Optional[float] = None

    def _prune(self, hits: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        if self._last_sweep is not None and now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        cutoff = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def hit(self, key: str, now: Optional[float] = None) -> bool:
        """บันทึกคำขอ คืน False เมื่อเกินโควตา (คำขอที่ถูกปฏิเสธไม่ถูกนับ)"""
        now = time.monotonic() if now is None else now
        self._sweep(now)
        hits = self._hits.setdefault(key, deque())
        self._prune(hits, now)
        if len(hits) >= self.limit:
            return False
        hits.append(now)
        return True

    def remaining(self, key: str, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        hits = self._hits.get(key)
        if not hits:
            return self.limit
        self._prune(hits, now)
        if not hits:
            del self._hits[key]
            return self.limit
        return max(self.limit - len(hits), 0)

    def tracked_keys(self) -> int:
        return len(self._hits)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._hits.clear()
            self._last_sweep = None
        else:
            self._hits.pop(key, None)
