"""
Pytest configuration and shared fixtures
"""

import hashlib
import tempfile
import threading
from pathlib import Path

import numpy as np
import pytest

from core.codecs import Algorithm, AlgorithmLevel, CodecAdapter, CodecResult, CodecUnsupported
from core.hull import build_lower_hull
from core.metrics import MetricSample


class FakeCodecAdapter(CodecAdapter):
    """Deterministic adapter: time and size are linear in the input length.

    `profile` maps each setting to (seconds_per_byte, size_ratio). Settings
    missing from the profile, or listed in `unsupported`, raise
    CodecUnsupported. Payloads are zero bytes of the scripted size.
    """

    def __init__(self, profile, unsupported=()):
        self.profile = dict(profile)
        self.unsupported = set(unsupported)
        self.calls = []  # (setting, length, sha1 of input)
        self._lock = threading.Lock()

    def supports(self, setting):
        return setting in self.profile and setting not in self.unsupported

    def compress(self, data, setting):
        if not self.supports(setting):
            raise CodecUnsupported(f"Unsupported setting: {setting}")
        seconds_per_byte, ratio = self.profile[setting]
        with self._lock:
            self.calls.append((setting, len(data), hashlib.sha1(data).hexdigest()))
        size = int(round(len(data) * ratio))
        return CodecResult(
            elapsed_s=len(data) * seconds_per_byte,
            compressed_size=size,
            payload=bytes(size),
        )


GZIP_1 = AlgorithmLevel(Algorithm.GZIP, 1)
GZIP_6 = AlgorithmLevel(Algorithm.GZIP, 6)
GZIP_9 = AlgorithmLevel(Algorithm.GZIP, 9)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def gzip_profile():
    """Three gzip levels with a convex (time, size) trade-off."""
    return {
        GZIP_1: (1e-8, 0.50),
        GZIP_6: (3e-8, 0.40),
        GZIP_9: (8e-8, 0.38),
    }


@pytest.fixture
def make_adapter():
    """Factory for FakeCodecAdapter instances."""
    return FakeCodecAdapter


@pytest.fixture
def random_bytes():
    """Deterministic incompressible bytes of a given length."""
    def make(size, seed=0):
        return np.random.default_rng(seed).integers(0, 256, size=size, dtype=np.uint8).tobytes()
    return make


@pytest.fixture
def text_bytes():
    """Compressible, log-like bytes of roughly a given length."""
    def make(size):
        lines = []
        total = 0
        i = 0
        while total < size:
            line = f"2024-01-01 12:00:{i % 60:02d} INFO request id={i} path=/api/v1/items/{i % 97} status=200\n"
            lines.append(line)
            total += len(line)
            i += 1
        return "".join(lines).encode()[:size]
    return make


@pytest.fixture
def sample_documents(temp_dir, text_bytes, random_bytes):
    """Two documents on disk: one compressible, one not."""
    text = temp_dir / "access.log"
    text.write_bytes(text_bytes(64 * 1024))
    noise = temp_dir / "noise.bin"
    noise.write_bytes(random_bytes(16 * 1024))
    return [text, noise]


@pytest.fixture
def make_hull():
    """Build a hull from (time, size) pairs, levels numbered 1, 2, ..."""
    def make(doc_id, points, algorithm=Algorithm.GZIP, levels=None):
        levels = levels or list(range(1, len(points) + 1))
        samples = [
            MetricSample(
                doc_id=doc_id,
                setting=AlgorithmLevel(algorithm, level),
                elapsed_s=float(t),
                compressed_size=int(s),
            )
            for (t, s), level in zip(points, levels)
        ]
        return build_lower_hull(samples)
    return make


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
