"""Test the timestamp-gated snapshot sampler.

Tests for arm_rig.state.sampler:
    - First sample always emits
    - Early samples are skipped, not queued
    - flush emits unconditionally and resets the gate

Run:
    pytest tests/test_sampler.py -v
"""

import pytest

from arm_rig.state.sampler import ThrottledSampler


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def sampler(emitted):
    return ThrottledSampler(publish=emitted.append, interval_s=0.040)


def test_first_sample_emits(sampler, emitted):
    assert sampler.sample("a", now=10.0)
    assert emitted == ["a"]
    assert sampler.last_emit == 10.0


def test_early_samples_skipped(sampler, emitted):
    sampler.sample("a", now=0.0)
    assert not sampler.sample("b", now=0.016)
    assert not sampler.sample("c", now=0.039)
    assert sampler.sample("d", now=0.040)
    assert not sampler.sample("e", now=0.070)
    assert sampler.sample("f", now=0.085)
    assert emitted == ["a", "d", "f"]


def test_flush_emits_and_resets(sampler, emitted):
    sampler.sample("a", now=0.0)
    sampler.flush("final")
    assert emitted == ["a", "final"]
    assert sampler.last_emit is None
    assert sampler.is_due(0.001)


def test_reset_discards_without_publishing(sampler, emitted):
    sampler.sample("a", now=0.0)
    sampler.reset()
    assert emitted == ["a"]
    assert sampler.sample("b", now=0.001)
