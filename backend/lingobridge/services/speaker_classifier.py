"""
Speaker diarization from dual-channel audio energy.

Left channel carries the local microphone (speaker A), right channel the
remote party (speaker B). Decisions look at a window that ends STT_DELAY
before "now" because recognized words lag the audio that produced them.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional

from ..config import settings

logger = logging.getLogger(__name__)


class Speaker(str, Enum):
    LOCAL = "A"
    REMOTE = "B"


@dataclass(frozen=True)
class EnergySample:
    left: float
    right: float


class SpeakerClassifier:
    """Classifies the current utterance as local (A) or remote (B).

    Benefits:
    - Delayed window lines audio up with recognizer output
    - Peak counting wins over raw energy when one side clearly dominates
    - Local mic boost compensates quieter capture at equal vocal effort
    """

    def __init__(
        self,
        enabled: Optional[bool] = None,
        fps: Optional[int] = None,
        history_size: Optional[int] = None,
        stt_delay_ms: Optional[int] = None,
        window_ms: Optional[int] = None,
        min_history_ms: Optional[int] = None,
        peak_threshold: Optional[float] = None,
        dominant_peaks: Optional[int] = None,
        quiet_peaks: Optional[int] = None,
        local_boost: Optional[float] = None,
        session_id: str = "-",
    ):
        self.enabled = enabled if enabled is not None else settings.dual_channel_enabled
        self.fps = fps if fps is not None else settings.audio_fps
        capacity = history_size if history_size is not None else settings.energy_history_size
        delay_ms = stt_delay_ms if stt_delay_ms is not None else settings.stt_delay_ms
        window_ms = window_ms if window_ms is not None else settings.speaker_window_ms
        min_ms = min_history_ms if min_history_ms is not None else settings.speaker_min_history_ms

        self.delay_frames = int(self.fps * delay_ms / 1000)
        self.window_frames = int(self.fps * window_ms / 1000)
        self.min_frames = int(self.fps * min_ms / 1000)
        self.peak_threshold = peak_threshold if peak_threshold is not None else settings.peak_threshold
        self.dominant_peaks = dominant_peaks if dominant_peaks is not None else settings.dominant_peak_count
        self.quiet_peaks = quiet_peaks if quiet_peaks is not None else settings.quiet_peak_count
        self.local_boost = local_boost if local_boost is not None else settings.local_mic_boost
        self.session_id = session_id

        self._history: Deque[EnergySample] = deque(maxlen=capacity)
        self._local_override = False
        self._degraded = False

    # ==========================================================================
    # Inputs
    # ==========================================================================

    def add_sample(self, left: float, right: float) -> None:
        """Record one analysis tick. Oldest samples are evicted at capacity."""
        if self._degraded:
            logger.info(f"[{self.session_id}] Audio energy resumed, diarization restored")
            self._degraded = False
        self._history.append(EnergySample(float(left), float(right)))

    def set_local_speaking(self, speaking: bool) -> None:
        """Manual override: the local participant says they are speaking."""
        self._local_override = speaking

    def mark_degraded(self, reason: str = "") -> None:
        """Audio source dropped: fall back to the default speaker until samples resume."""
        if not self._degraded:
            logger.warning(f"[{self.session_id}] Diarization degraded: {reason or 'audio source lost'}")
        self._degraded = True
        self._history.clear()

    @property
    def degraded(self) -> bool:
        return self._degraded

    def reset(self) -> None:
        self._history.clear()
        self._local_override = False
        self._degraded = False

    # ==========================================================================
    # Decision
    # ==========================================================================

    def window(self) -> List[EnergySample]:
        """Samples of the delayed decision window (may be shorter early on)."""
        samples = list(self._history)
        end = max(0, len(samples) - self.delay_frames)
        start = max(0, end - self.window_frames)
        return samples[start:end]

    def classify(self) -> Speaker:
        if self._local_override:
            return Speaker.LOCAL
        if not self.enabled or self._degraded or len(self._history) < self.min_frames:
            return Speaker.REMOTE

        window = self.window()
        if not window:
            return Speaker.REMOTE

        left_energy = sum(s.left for s in window)
        right_energy = sum(s.right for s in window)
        left_peaks = sum(1 for s in window if s.left > self.peak_threshold)
        right_peaks = sum(1 for s in window if s.right > self.peak_threshold)

        if left_peaks >= self.dominant_peaks and right_peaks < self.quiet_peaks:
            return Speaker.LOCAL
        if right_peaks >= self.dominant_peaks and left_peaks < self.quiet_peaks:
            return Speaker.REMOTE

        if left_energy == 0 and right_energy == 0:
            return Speaker.REMOTE
        if left_energy * self.local_boost >= right_energy:
            return Speaker.LOCAL
        return Speaker.REMOTE
