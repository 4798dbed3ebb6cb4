"""
Tests for gain automation in composer/audio/graph.
Run from project root: python -m pytest tests/test_gain_graph.py -v
Or: python tests/test_gain_graph.py
"""
import sys
import os
import math

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
from composer.audio.graph import GainNode, MixGraph


# -----------------------------------------------------------------------------
# GainNode
# -----------------------------------------------------------------------------

def test_default_value_holds():
    node = GainNode("track", 0.7)
    assert node.value_at(0.0) == pytest.approx(0.7)
    assert node.value_at(100.0) == pytest.approx(0.7)


def test_set_target_is_exponential():
    node = GainNode("track", 1.0)
    node.set_target_at(0.0, 1.0, 0.5)
    assert node.value_at(0.5) == pytest.approx(1.0)
    assert node.value_at(1.5) == pytest.approx(math.exp(-1.0))
    assert node.value_at(3.0) == pytest.approx(math.exp(-4.0))


def test_target_curve_never_jumps():
    node = GainNode("track", 0.7)
    node.set_target_at(0.2, 0.0, 0.05)
    node.set_target_at(0.7, 1.0, 0.3)
    curve = node.curve(0.0, 88200, 44100)
    assert float(np.max(np.abs(np.diff(curve)))) < 0.001


def test_values_are_clamped():
    node = GainNode("master", 5.0)
    assert node.default_value == 1.0
    node.set_value_at(-2.0, 1.0)
    assert node.value_at(1.0) == 0.0


def test_cancel_scheduled_keeps_earlier_events():
    node = GainNode("track", 1.0)
    node.set_value_at(0.5, 1.0)
    node.set_value_at(0.1, 2.0)
    node.cancel_scheduled(2.0)
    assert node.value_at(3.0) == pytest.approx(0.5)


def test_compact_preserves_future_values():
    node = GainNode("track", 0.7)
    node.set_value_at(0.7, 0.0)
    node.set_target_at(0.2, 0.1, 0.05)
    node.set_target_at(0.2, 0.15, 0.05)
    node.set_target_at(0.7, 1.0, 0.3)
    expected = [node.value_at(t) for t in (0.5, 0.9, 1.2, 2.0)]
    node.compact(0.5)
    assert len(node.events) <= 3
    actual = [node.value_at(t) for t in (0.5, 0.9, 1.2, 2.0)]
    assert actual == pytest.approx(expected, abs=1e-9)


# -----------------------------------------------------------------------------
# MixGraph
# -----------------------------------------------------------------------------

def test_graph_render_applies_gains():
    graph = MixGraph(track=0.5, speech=1.0, master=0.5)
    music = np.ones((2, 10), dtype=np.float32)
    speech = np.full((2, 10), 0.2, dtype=np.float32)
    out = graph.render(music, speech, 0.0, 1000)
    assert out.shape == (2, 10)
    assert np.allclose(out, (0.5 + 0.2) * 0.5)


def test_release_marks_graph():
    graph = MixGraph()
    graph.track.set_value_at(0.1, 1.0)
    graph.release()
    assert graph.released
    assert graph.track.events == []


if __name__ == "__main__":
    test_default_value_holds()
    test_set_target_is_exponential()
    test_target_curve_never_jumps()
    test_values_are_clamped()
    test_cancel_scheduled_keeps_earlier_events()
    test_compact_preserves_future_values()
    test_graph_render_applies_gains()
    test_release_marks_graph()
    print("All gain graph tests passed.")
