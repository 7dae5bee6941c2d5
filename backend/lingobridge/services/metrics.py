from dataclasses import dataclass, field
from typing import Dict, List, Tuple


def calc_percentiles(latencies: List[float]) -> Tuple[float, float]:
    """Return (p50, p95) of a latency list, zeros when empty."""
    if not latencies:
        return 0.0, 0.0
    sorted_lat = sorted(latencies)
    p50 = sorted_lat[len(sorted_lat) // 2]
    p95_idx = min(int(len(sorted_lat) * 0.95), len(sorted_lat) - 1)
    return p50, sorted_lat[p95_idx]


@dataclass
class SessionMetrics:
    """Per-session counters for both translation paths."""

    # Input
    words_received: int = 0
    blocks_closed: int = 0
    duplicate_events: int = 0
    stale_events: int = 0

    # Ghost path
    ghost_requests: int = 0
    ghost_skipped: int = 0
    ghost_failures: int = 0
    words_translated: int = 0
    ghost_latencies: List[float] = field(default_factory=list)

    # Slow path
    slow_requests: int = 0
    slow_completed: int = 0
    slow_failures: int = 0
    slow_cancelled: int = 0
    slow_discarded: int = 0
    slow_latencies: List[float] = field(default_factory=list)

    def record_ghost(self, latency_ms: float, words: int, failed: bool = False) -> None:
        if failed:
            self.ghost_failures += 1
            return
        self.words_translated += words
        self.ghost_latencies.append(latency_ms)

    def record_slow(self, latency_ms: float, outcome: str) -> None:
        if outcome == "completed":
            self.slow_completed += 1
            self.slow_latencies.append(latency_ms)
        elif outcome == "cancelled":
            self.slow_cancelled += 1
        else:
            self.slow_failures += 1

    def get_summary(self) -> Dict[str, object]:
        ghost_p50, ghost_p95 = calc_percentiles(self.ghost_latencies)
        slow_p50, slow_p95 = calc_percentiles(self.slow_latencies)
        return {
            "words_received": self.words_received,
            "words_translated": self.words_translated,
            "blocks_closed": self.blocks_closed,
            "duplicate_events": self.duplicate_events,
            "stale_events": self.stale_events,
            "ghost": {
                "requests": self.ghost_requests,
                "skipped": self.ghost_skipped,
                "failures": self.ghost_failures,
                "p50_ms": round(ghost_p50, 1),
                "p95_ms": round(ghost_p95, 1),
            },
            "slow": {
                "requests": self.slow_requests,
                "completed": self.slow_completed,
                "failures": self.slow_failures,
                "cancelled": self.slow_cancelled,
                "discarded": self.slow_discarded,
                "p50_ms": round(slow_p50, 1),
                "p95_ms": round(slow_p95, 1),
            },
        }
