from __future__ import annotations

import zlib
from dataclasses import dataclass
from typing import Protocol

try:
    import zstandard as zstd  # type: ignore
except Exception:  # pragma: no cover
    zstd = None

# gzip framing for zlib.compressobj/decompressobj
_GZIP_WBITS = 16 + zlib.MAX_WBITS


class StreamCompressor(Protocol):
    def compress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...


class StreamDecompressor(Protocol):
    def decompress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...


@dataclass(frozen=True)
class CodecGzip:
    """gzip/DEFLATE streaming codec (no external deps). Default level 1."""

    level: int = 1
    codec_id: str = "gzip"

    def __post_init__(self) -> None:
        if not (0 <= self.level <= 9):
            raise ValueError(f"gzip level must be 0..9, got {self.level}")

    def compressobj(self) -> StreamCompressor:
        return zlib.compressobj(self.level, zlib.DEFLATED, _GZIP_WBITS)

    def decompressobj(self) -> StreamDecompressor:
        return zlib.decompressobj(_GZIP_WBITS)


@dataclass(frozen=True)
class CodecZstd:
    """zstd streaming codec (via ``zstandard``). Frames carry a checksum."""

    level: int = 3
    codec_id: str = "zstd"

    def __post_init__(self) -> None:
        if not (1 <= self.level <= 22):
            raise ValueError(f"zstd level must be 1..22, got {self.level}")

    def _require(self) -> None:
        if zstd is None:
            raise RuntimeError(
                "Module 'zstandard' not available. Install with: python3 -m pip install zstandard"
            )

    def compressobj(self) -> StreamCompressor:
        self._require()
        c = zstd.ZstdCompressor(level=int(self.level), write_checksum=True)
        return c.compressobj()

    def decompressobj(self) -> StreamDecompressor:
        self._require()
        return zstd.ZstdDecompressor().decompressobj()


CODECS: dict[str, type] = {
    "gzip": CodecGzip,
    "zstd": CodecZstd,
}

DEFAULT_LEVELS: dict[str, int] = {
    "gzip": 1,
    "zstd": 3,
}


def get_codec(codec_id: str, level: int | None = None) -> CodecGzip | CodecZstd:
    """Build a part codec by id. ``level=None`` picks the codec default."""
    cls = CODECS.get(codec_id)
    if cls is None:
        raise ValueError(f"unknown codec: {codec_id!r} (expected one of: {', '.join(sorted(CODECS))})")
    if level is None:
        level = DEFAULT_LEVELS[codec_id]
    return cls(level=int(level))


# Errors a codec may raise mid-stream (besides OSError).
CODEC_ERRORS: tuple[type[BaseException], ...] = (zlib.error,) + (
    (zstd.ZstdError,) if zstd is not None else ()
)
