"""
Gain-staged mix graph with sample-accurate automation.
Fixed topology: track -> master, speech -> master, master -> output.

Automation follows Web Audio AudioParam semantics:
  set_value_at(v, t)          value jumps to v at t
  set_target_at(v, t, tau)    from t, exponential approach toward v with time constant tau
  cancel_scheduled(t)         drop events at or after t (earlier curves keep running)
The ducking loop only ever uses set_target_at, so gain never jumps.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from composer.dsp.envelopes import clamp01

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutomationEvent:
    time: float
    kind: str  # "set" or "target"
    value: float
    time_constant: float = 0.0


def _approach(v0: float, target: float, t0: float, tau: float, t):
    """target + (v0 - target) * exp(-(t - t0) / tau); tau <= 0 reaches target immediately."""
    if tau <= 0:
        return np.full_like(np.asarray(t, dtype=np.float64), target)
    return target + (v0 - target) * np.exp(-(np.asarray(t, dtype=np.float64) - t0) / tau)


class GainNode:
    def __init__(self, name: str, value: float = 1.0):
        self.name = name
        self.default_value = float(clamp01(value))
        self._events: List[AutomationEvent] = []

    @property
    def events(self) -> List[AutomationEvent]:
        return list(self._events)

    def _insert(self, event: AutomationEvent) -> None:
        # Keep time order; events at the same time apply in insertion order
        idx = len(self._events)
        while idx > 0 and self._events[idx - 1].time > event.time:
            idx -= 1
        self._events.insert(idx, event)

    def set_value_at(self, value: float, time: float) -> None:
        self._insert(AutomationEvent(float(time), "set", float(clamp01(value))))

    def set_target_at(self, target: float, start_time: float, time_constant: float) -> None:
        self._insert(
            AutomationEvent(float(start_time), "target", float(clamp01(target)), max(0.0, float(time_constant)))
        )

    def cancel_scheduled(self, time: float) -> None:
        self._events = [e for e in self._events if e.time < time]

    def reset(self, value: float) -> None:
        """Drop all automation and hold value from time zero."""
        self.default_value = float(clamp01(value))
        self._events = []

    def compact(self, time: float) -> None:
        """
        Fold all events at or before time into the equivalent state at time.
        Only call once nothing earlier than time will be queried again.
        """
        past = [e for e in self._events if e.time <= time]
        if len(past) <= 1:
            return
        segments = self._segments()
        # The segment active at `time` is the last one starting at or before it
        active = [s for s in segments if s[0] <= time][-1]
        start, kind, v0, target, tau = active
        value_now = float(self._evaluate(active, np.array([time]))[0])
        future = [e for e in self._events if e.time > time]
        if kind == "target":
            # Re-anchor the running approach at `time`; the curve is memoryless
            self._events = [AutomationEvent(time, "set", value_now), AutomationEvent(time, "target", target, tau)]
        else:
            self._events = [AutomationEvent(time, "set", value_now)]
        self._events.extend(future)

    def _segments(self) -> List[Tuple[float, str, float, float, float]]:
        """(start_time, kind, start_value, target, tau) pieces covering [-inf, inf)."""
        segments = [(-np.inf, "hold", self.default_value, self.default_value, 0.0)]
        for event in self._events:
            value_at_event = float(self._evaluate(segments[-1], np.array([event.time]))[0])
            if event.kind == "set":
                segments.append((event.time, "hold", event.value, event.value, 0.0))
            else:
                segments.append((event.time, "target", value_at_event, event.value, event.time_constant))
        return segments

    @staticmethod
    def _evaluate(segment, t: np.ndarray) -> np.ndarray:
        start, kind, v0, target, tau = segment
        if kind == "hold":
            return np.full(t.shape, v0, dtype=np.float64)
        return _approach(v0, target, start, tau, t)

    def value_at(self, time: float) -> float:
        return float(self.curve_at(np.array([float(time)]))[0])

    def curve_at(self, times: np.ndarray) -> np.ndarray:
        times = np.asarray(times, dtype=np.float64)
        out = np.empty(times.shape, dtype=np.float64)
        segments = self._segments()
        starts = np.array([s[0] for s in segments])
        # Index of the last segment starting at or before each time
        idx = np.searchsorted(starts, times, side="right") - 1
        for i, segment in enumerate(segments):
            mask = idx == i
            if np.any(mask):
                out[mask] = self._evaluate(segment, times[mask])
        return np.clip(out, 0.0, 1.0)

    def curve(self, start_s: float, num_samples: int, sample_rate: int) -> np.ndarray:
        """Gain for samples start_s + i / sample_rate, i in [0, num_samples)."""
        times = start_s + np.arange(num_samples, dtype=np.float64) / sample_rate
        return self.curve_at(times)


class MixGraph:
    """Named gain nodes for one mixer. Writes happen only from the mixer's tick and control calls."""

    NODE_NAMES = ("track", "speech", "master")

    def __init__(self, track: float = 0.7, speech: float = 1.0, master: float = 1.0):
        self.track = GainNode("track", track)
        self.speech = GainNode("speech", speech)
        self.master = GainNode("master", master)
        self.released = False

    @property
    def nodes(self) -> Dict[str, GainNode]:
        return {"track": self.track, "speech": self.speech, "master": self.master}

    def render(
        self,
        music: np.ndarray,
        speech: np.ndarray,
        start_s: float,
        sample_rate: int,
    ) -> np.ndarray:
        """
        Apply the graph to one block. music and speech are (2, n) arrays already
        aligned to start_s; returns the (2, n) master output.
        """
        n = music.shape[-1]
        track_gain = self.track.curve(start_s, n, sample_rate)
        speech_gain = self.speech.curve(start_s, n, sample_rate)
        master_gain = self.master.curve(start_s, n, sample_rate)
        out = (music * track_gain + speech * speech_gain) * master_gain
        return out.astype(np.float32)

    def compact(self, time: float) -> None:
        for node in self.nodes.values():
            node.compact(time)

    def release(self) -> None:
        """Drop automation; the graph must not be rendered again."""
        for node in self.nodes.values():
            node.cancel_scheduled(-np.inf)
        self.released = True
        logger.debug("Mix graph released")
