"""Pytest configuration and fixtures"""

import numpy as np
import pytest
from hypothesis import settings, Verbosity


# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=20, verbosity=Verbosity.normal)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose)

# Use CI profile by default
settings.load_profile("ci")


SAMPLE_RATE = 48000
FFT_SIZE = 2048


class FakeClock:
    """Manually advanced monotonic clock (seconds)"""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def advance_ms(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000.0


def make_tone(frequencies, amplitudes=None, size: int = FFT_SIZE,
              sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Sum of sinusoids as a float32 block"""
    if amplitudes is None:
        amplitudes = [1.0] * len(frequencies)
    t = np.arange(size) / sample_rate
    block = np.zeros(size)
    for frequency, amplitude in zip(frequencies, amplitudes):
        block += amplitude * np.sin(2 * np.pi * frequency * t)
    return block.astype(np.float32)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sine_440():
    """2048-sample 440 Hz sine at full amplitude"""
    return make_tone([440.0])


@pytest.fixture
def silent_block():
    return np.zeros(FFT_SIZE, dtype=np.float32)
