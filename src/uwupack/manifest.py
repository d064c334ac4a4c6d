"""Manifest model and (de)serialization.

The manifest is the JSON form of ``PackingResult``, gzip-compressed (level 1),
written once to ``<output_name_format with %d -> dat>``.

Wire schema (camelCase keys, stable order):
  {
    "totalSize": <int>,
    "compressedSize": <int>,
    "parts": <int>,
    "fileList": [
      {
        "name": "<part file name>",
        "sha1": "<hex, uncompressed bytes>",
        "size": <int>,
        "compressed": <bool>,
        "compressedSha1": "<hex>",     # only when compressed
        "compressedSize": <int>,       # only when compressed
        "codec": "gzip" | "zstd",      # only when compressed
        "fileList": [
          {"filePath", "fileOffset", "fileSize", "packageOffset", "packageSize"}, ...
        ]
      }, ...
    ]
  }
"""

from __future__ import annotations

import gzip
import json
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from uwupack.errors import CorruptManifest, MissingPart, StreamIOError

MANIFEST_GZIP_LEVEL = 1


def _as_int(raw: dict[str, Any], key: str, *, where: str) -> int:
    v = raw.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise CorruptManifest(f"{where}: '{key}' malformed: {v!r}")
    if v < 0:
        raise CorruptManifest(f"{where}: '{key}' negative: {v}")
    return v


def _as_str(raw: dict[str, Any], key: str, *, where: str) -> str:
    v = raw.get(key)
    if not isinstance(v, str) or not v:
        raise CorruptManifest(f"{where}: '{key}' malformed: {v!r}")
    return v


@dataclass(frozen=True)
class FileRecord:
    """One contiguous byte range of a source file stored in one part."""

    file_path: str
    file_offset: int
    file_size: int
    package_offset: int
    package_size: int

    @staticmethod
    def from_dict(raw: Any) -> "FileRecord":
        if not isinstance(raw, dict):
            raise CorruptManifest(f"file record is not an object: {raw!r}")
        where = "file record"
        return FileRecord(
            file_path=_as_str(raw, "filePath", where=where),
            file_offset=_as_int(raw, "fileOffset", where=where),
            file_size=_as_int(raw, "fileSize", where=where),
            package_offset=_as_int(raw, "packageOffset", where=where),
            package_size=_as_int(raw, "packageSize", where=where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "fileOffset": self.file_offset,
            "fileSize": self.file_size,
            "packageOffset": self.package_offset,
            "packageSize": self.package_size,
        }


@dataclass(frozen=True)
class PartEntry:
    name: str
    sha1: str
    size: int
    compressed: bool
    file_list: tuple[FileRecord, ...] = ()
    compressed_sha1: str | None = None
    compressed_size: int | None = None
    codec: str | None = None

    @property
    def stored_size(self) -> int:
        """Size of the part file on disk."""
        return self.size if self.compressed_size is None else self.compressed_size

    @staticmethod
    def from_dict(raw: Any) -> "PartEntry":
        if not isinstance(raw, dict):
            raise CorruptManifest(f"part entry is not an object: {raw!r}")
        name = _as_str(raw, "name", where="part entry")
        where = f"part {name}"

        compressed = raw.get("compressed", False)
        if not isinstance(compressed, bool):
            raise CorruptManifest(f"{where}: 'compressed' malformed: {compressed!r}")

        files_raw = raw.get("fileList")
        if not isinstance(files_raw, list):
            raise CorruptManifest(f"{where}: 'fileList' missing")

        compressed_sha1 = None
        compressed_size = None
        codec = None
        if compressed:
            compressed_sha1 = _as_str(raw, "compressedSha1", where=where)
            compressed_size = _as_int(raw, "compressedSize", where=where)
            # manifests without a codec key were written with gzip
            codec = raw.get("codec") or "gzip"
            if not isinstance(codec, str):
                raise CorruptManifest(f"{where}: 'codec' malformed: {codec!r}")

        return PartEntry(
            name=name,
            sha1=_as_str(raw, "sha1", where=where),
            size=_as_int(raw, "size", where=where),
            compressed=compressed,
            file_list=tuple(FileRecord.from_dict(x) for x in files_raw),
            compressed_sha1=compressed_sha1,
            compressed_size=compressed_size,
            codec=codec,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "sha1": self.sha1,
            "size": self.size,
            "compressed": self.compressed,
        }
        if self.compressed_sha1 is not None:
            d["compressedSha1"] = self.compressed_sha1
        if self.compressed_size is not None:
            d["compressedSize"] = self.compressed_size
        if self.codec is not None:
            d["codec"] = self.codec
        d["fileList"] = [r.to_dict() for r in self.file_list]
        return d


@dataclass
class PackingResult:
    total_size: int = 0
    compressed_size: int = 0
    parts: int = 0
    file_list: list[PartEntry] = field(default_factory=list)

    def add_part(self, part: PartEntry) -> None:
        self.total_size += part.size
        self.compressed_size += part.stored_size
        self.file_list.append(part)

    def iter_records(self) -> Iterable[tuple[PartEntry, FileRecord]]:
        for part in self.file_list:
            for rec in part.file_list:
                yield part, rec

    def records_for(self, file_path: str) -> list[tuple[PartEntry, FileRecord]]:
        """All ranges of one source file, in ascending ``file_offset`` order."""
        out = [(p, r) for p, r in self.iter_records() if r.file_path == file_path]
        out.sort(key=lambda pr: pr[1].file_offset)
        return out

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSize": self.total_size,
            "compressedSize": self.compressed_size,
            "parts": self.parts,
            "fileList": [p.to_dict() for p in self.file_list],
        }

    def serialize(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> "PackingResult":
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptManifest(f"manifest JSON invalid: {e}") from e
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Any) -> "PackingResult":
        if not isinstance(raw, dict):
            raise CorruptManifest("manifest is not an object")
        files_raw = raw.get("fileList")
        if not isinstance(files_raw, list):
            raise CorruptManifest("manifest 'fileList' missing")
        where = "manifest"
        return cls(
            total_size=_as_int(raw, "totalSize", where=where),
            compressed_size=_as_int(raw, "compressedSize", where=where),
            parts=_as_int(raw, "parts", where=where),
            file_list=[PartEntry.from_dict(x) for x in files_raw],
        )


# --- File helpers ---


def write_manifest(result: PackingResult, path: Path) -> None:
    data = gzip.compress(result.serialize(), compresslevel=MANIFEST_GZIP_LEVEL)
    try:
        Path(path).write_bytes(data)
    except OSError as e:
        raise StreamIOError(f"cannot write manifest: {path}: {e}") from e


def read_manifest(path: Path) -> PackingResult:
    p = Path(path)
    if not p.is_file():
        raise MissingPart(f"manifest not found: {p}")
    try:
        data = gzip.decompress(p.read_bytes())
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptManifest(f"manifest is not valid gzip: {p}: {e}") from e
    return PackingResult.deserialize(data)
