"""
Mixpack Compression Codecs

Thin adapter over the standard codec families. Every family here produces
self-delimiting members that the family's own decoder reads back to back,
which is what lets a document be split across two levels without any
container format:

- gzip:  RFC 1952 members, `gzip -d` / `zcat` read concatenated members
- bzip2: multi-stream files, `bunzip2` reads concatenated streams
- xz:    concatenated .xz streams, `xz -d` reads them sequentially
- zstd:  concatenated frames, `zstd -d` reads them sequentially

The adapter is the only place that touches a codec library. Everything above
it only sees elapsed time and compressed size.
"""

import bz2
import gzip
import io
import lzma
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

import zstandard as zstd


class Algorithm(str, Enum):
    """Closed set of supported algorithm families."""
    GZIP = "gzip"
    BZIP2 = "bzip2"
    XZ = "xz"
    ZSTD = "zstd"


# Valid level range per family (inclusive)
LEVEL_RANGES: Dict[Algorithm, Tuple[int, int]] = {
    Algorithm.GZIP: (1, 9),
    Algorithm.BZIP2: (1, 9),
    Algorithm.XZ: (0, 9),
    Algorithm.ZSTD: (1, 22),
}

# File extension used for composed artifacts
EXTENSIONS: Dict[Algorithm, str] = {
    Algorithm.GZIP: ".gz",
    Algorithm.BZIP2: ".bz2",
    Algorithm.XZ: ".xz",
    Algorithm.ZSTD: ".zst",
}


class CodecError(Exception):
    """Base class for codec adapter failures."""


class CodecUnsupported(CodecError):
    """Algorithm/level combination not implemented by the adapter."""


class CodecIOError(CodecError):
    """Document bytes could not be read."""


@dataclass(frozen=True, order=True)
class AlgorithmLevel:
    """An (algorithm, level) compression setting."""
    algorithm: Algorithm
    level: int

    @property
    def name(self) -> str:
        return f"{self.algorithm.value}_{self.level}"

    def __str__(self):
        return self.name


@dataclass
class CodecResult:
    """Result of one codec invocation."""
    elapsed_s: float
    compressed_size: int
    payload: bytes


def _compress_gzip(data: bytes, level: int) -> bytes:
    # mtime=0 keeps members byte-identical across runs
    return gzip.compress(data, compresslevel=level, mtime=0)


def _compress_bzip2(data: bytes, level: int) -> bytes:
    return bz2.compress(data, compresslevel=level)


def _compress_xz(data: bytes, level: int) -> bytes:
    return lzma.compress(data, format=lzma.FORMAT_XZ, preset=level)


def _compress_zstd(data: bytes, level: int) -> bytes:
    return zstd.ZstdCompressor(level=level).compress(data)


def _decompress_zstd(payload: bytes) -> bytes:
    out = io.BytesIO()
    reader = zstd.ZstdDecompressor().stream_reader(
        io.BytesIO(payload), read_across_frames=True
    )
    with reader:
        while True:
            chunk = reader.read(1 << 20)
            if not chunk:
                break
            out.write(chunk)
    return out.getvalue()


_COMPRESSORS = {
    Algorithm.GZIP: _compress_gzip,
    Algorithm.BZIP2: _compress_bzip2,
    Algorithm.XZ: _compress_xz,
    Algorithm.ZSTD: _compress_zstd,
}

# Standard decoders; each one reads concatenated members sequentially
_DECOMPRESSORS = {
    Algorithm.GZIP: gzip.decompress,
    Algorithm.BZIP2: bz2.decompress,
    Algorithm.XZ: lzma.decompress,
    Algorithm.ZSTD: _decompress_zstd,
}


class CodecAdapter:
    """Capability interface between the optimizer and the codec libraries.

    Subclasses (or test doubles) override `compress` to change how time and
    size are produced; the rest of the system never imports a codec.
    """

    def supports(self, setting: AlgorithmLevel) -> bool:
        if setting.algorithm not in LEVEL_RANGES:
            return False
        lo, hi = LEVEL_RANGES[setting.algorithm]
        return lo <= setting.level <= hi

    def compress(self, data: bytes, setting: AlgorithmLevel) -> CodecResult:
        """Compress `data` with `setting`, timing only the codec call.

        Raises:
            CodecUnsupported: if the setting is outside the family's range
        """
        if not self.supports(setting):
            raise CodecUnsupported(f"Unsupported setting: {setting}")
        compressor = _COMPRESSORS[setting.algorithm]

        start = time.perf_counter()
        payload = compressor(data, setting.level)
        elapsed = time.perf_counter() - start

        return CodecResult(
            elapsed_s=elapsed,
            compressed_size=len(payload),
            payload=payload,
        )

    def decompress(self, payload: bytes, algorithm: Algorithm) -> bytes:
        """Decode every member of `payload` with the family's standard decoder."""
        if algorithm not in _DECOMPRESSORS:
            raise CodecUnsupported(f"Unsupported algorithm: {algorithm}")
        try:
            return _DECOMPRESSORS[algorithm](payload)
        except (OSError, EOFError, lzma.LZMAError, zstd.ZstdError) as e:
            raise CodecError(f"Cannot decode {algorithm.value} payload: {e}")


def get_default_adapter() -> CodecAdapter:
    """Adapter backed by the standard codec libraries."""
    return CodecAdapter()
