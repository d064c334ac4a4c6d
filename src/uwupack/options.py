"""Packing options and the options document loader.

Options can come from three places, in increasing precedence:
  defaults < options document (JSON) < explicit CLI flags

Options document schema id: ``uwupack.options.v1``

  {
    "spec": "uwupack.options.v1",        # optional, must match when present
    "max_part_size": 1073741824,         # optional, positive int (null = unbounded)
    "output_name_format": "assets_%d",   # optional, must contain %d
    "compress": true,                    # optional
    "codec": "gzip",                     # optional: gzip | zstd
    "compress_level": 1,                 # optional, codec dependent
    "chunk_size": 262144                 # optional, positive int
  }

Strict: unknown keys are errors.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Final

from uwupack.core.part_codec import CODECS, get_codec
from uwupack.errors import ConfigurationError

SCHEMA_ID: Final[str] = "uwupack.options.v1"

PLACEHOLDER: Final[str] = "%d"
ARCHIVE_EXT: Final[str] = ".uwu"
MANIFEST_TOKEN: Final[str] = "dat"

# Minimum width; indexes >= 1000 simply get more digits.
PART_INDEX_WIDTH: Final[int] = 3

CHUNK_SIZE_DEFAULT: Final[int] = 256 * 1024


@dataclass(frozen=True)
class PackingOptions:
    max_part_size: int | None = None  # None = unbounded
    output_name_format: str = PLACEHOLDER
    compress: bool = False
    codec: str = "gzip"
    compress_level: int | None = None  # None = codec default
    chunk_size: int = CHUNK_SIZE_DEFAULT

    def __post_init__(self) -> None:
        fmt = self.output_name_format
        if not isinstance(fmt, str) or PLACEHOLDER not in fmt:
            raise ConfigurationError(f"Output name format missing '{PLACEHOLDER}' placeholder: {fmt!r}")
        if not fmt.endswith(ARCHIVE_EXT):
            object.__setattr__(self, "output_name_format", fmt + ARCHIVE_EXT)

        if self.max_part_size is not None:
            _check_positive_int("max_part_size", self.max_part_size)
        _check_positive_int("chunk_size", self.chunk_size)

        if not isinstance(self.compress, bool):
            raise ConfigurationError(f"compress must be bool, got {self.compress!r}")
        if self.codec not in CODECS:
            raise ConfigurationError(
                f"unknown codec: {self.codec!r} (expected one of: {', '.join(sorted(CODECS))})"
            )
        if self.compress_level is not None and (
            isinstance(self.compress_level, bool) or not isinstance(self.compress_level, int)
        ):
            raise ConfigurationError(f"compress_level must be int, got {self.compress_level!r}")
        try:
            get_codec(self.codec, self.compress_level)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    # --- Naming ---

    def part_name(self, index: int) -> str:
        """File name of the 1-based part ``index``."""
        if index < 1:
            raise ValueError(f"part index must be >= 1, got {index}")
        return self.output_name_format.replace(PLACEHOLDER, f"{index:0{PART_INDEX_WIDTH}d}", 1)

    def manifest_name(self) -> str:
        return self.output_name_format.replace(PLACEHOLDER, MANIFEST_TOKEN, 1)

    def part_codec(self):
        return get_codec(self.codec, self.compress_level)

    # --- Construction helpers ---

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PackingOptions":
        if not isinstance(raw, Mapping):
            raise ConfigurationError("options must be a mapping")
        allowed = {f.name for f in fields(cls)}
        extra = [k for k in raw.keys() if k not in allowed]
        if extra:
            raise ConfigurationError(f"unsupported option keys: {', '.join(sorted(extra))}")
        return cls(**dict(raw))

    def merged(self, **overrides: Any) -> "PackingOptions":
        """Return a copy with the non-None ``overrides`` applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return PackingOptions.from_mapping(values)


def _check_positive_int(name: str, v: Any) -> None:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ConfigurationError(f"{name} must be int, got {v!r}")
    if v <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {v}")


def coerce_options(options: PackingOptions | Mapping[str, Any] | None) -> PackingOptions:
    if options is None:
        return PackingOptions()
    if isinstance(options, PackingOptions):
        return options
    return PackingOptions.from_mapping(options)


# -----------------------
# Options document loader
# -----------------------


def _read_json_text(arg: str) -> str:
    s = arg.strip()
    if not s:
        raise ConfigurationError("options: empty input")
    if s.startswith("@"):  # @file.json
        p = Path(s[1:]).expanduser()
        if not p.is_file():
            raise ConfigurationError(f"options: file not found: {p}")
        return p.read_text(encoding="utf-8")
    return s


def load_options_dict(arg: str) -> dict[str, Any]:
    """Parse and validate an options document, returning only the keys it sets."""
    try:
        raw = json.loads(_read_json_text(arg))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"options: invalid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError("options: top-level JSON must be an object")

    spec = raw.pop("spec", SCHEMA_ID)
    if spec != SCHEMA_ID:
        raise ConfigurationError(f"options: unsupported spec {spec!r} (expected {SCHEMA_ID!r})")

    # full validation, defaults filled in for the keys that are absent
    PackingOptions.from_mapping(raw)
    return raw


def load_options(arg: str) -> PackingOptions:
    return PackingOptions.from_mapping(load_options_dict(arg))
