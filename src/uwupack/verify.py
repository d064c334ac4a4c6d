"""Verification of a packed output directory.

Policy: light by default (manifest consistency + part presence/size),
``full=True`` recomputes sha1 over every part.

Light checks:
  - parts == len(fileList), aggregate totals add up
  - per part: size == sum(packageSize), ranges contiguous from offset 0
  - per source file: ranges contiguous across parts and cover fileSize
  - every part file exists with its on-disk size

Full checks (additionally):
  - uncompressed part: sha1 of the file == sha1
  - compressed part: sha1 of the file == compressedSha1, and sha1 of the
    decompressed stream == sha1 with the decompressed length == size
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from uwupack.core.part_codec import CODEC_ERRORS, get_codec
from uwupack.errors import CorruptManifest, HashMismatch, MissingPart
from uwupack.manifest import PackingResult, PartEntry, read_manifest
from uwupack.options import PLACEHOLDER, PackingOptions

CHUNK_SIZE_DEFAULT = 256 * 1024


def _check_manifest(result: PackingResult) -> None:
    if result.parts != len(result.file_list):
        raise CorruptManifest(f"manifest parts={result.parts} but fileList has {len(result.file_list)} entries")

    total = sum(p.size for p in result.file_list)
    if result.total_size != total:
        raise CorruptManifest(f"manifest totalSize={result.total_size} but parts add up to {total}")

    stored = sum(p.stored_size for p in result.file_list)
    if result.compressed_size != stored:
        raise CorruptManifest(f"manifest compressedSize={result.compressed_size} but parts add up to {stored}")

    for part in result.file_list:
        pos = 0
        for rec in part.file_list:
            if rec.package_offset != pos:
                raise CorruptManifest(
                    f"part {part.name}: {rec.file_path} packageOffset={rec.package_offset}, expected {pos}"
                )
            pos += rec.package_size
        if pos != part.size:
            raise CorruptManifest(f"part {part.name}: size={part.size} but records add up to {pos}")

    # ranges of a source file: contiguous, in part order, covering the whole file
    next_offset: dict[str, int] = {}
    sizes: dict[str, int] = {}
    for _part, rec in result.iter_records():
        expected = next_offset.get(rec.file_path, 0)
        if rec.file_offset != expected:
            raise CorruptManifest(f"{rec.file_path}: fileOffset={rec.file_offset}, expected {expected}")
        if sizes.setdefault(rec.file_path, rec.file_size) != rec.file_size:
            raise CorruptManifest(f"{rec.file_path}: inconsistent fileSize")
        next_offset[rec.file_path] = expected + rec.package_size

    for rel, end in next_offset.items():
        if end != sizes[rel]:
            raise CorruptManifest(f"{rel}: ranges cover {end} of {sizes[rel]} bytes")


def _sha1_file(p: Path, *, chunk_size: int = CHUNK_SIZE_DEFAULT) -> str:
    h = hashlib.sha1()
    with p.open("rb") as f:
        while True:
            b = f.read(chunk_size)
            if not b:
                break
            h.update(b)
    return h.hexdigest()


def _sha1_decompressed(p: Path, codec_id: str, *, chunk_size: int = CHUNK_SIZE_DEFAULT) -> tuple[str, int]:
    h = hashlib.sha1()
    n = 0
    dobj = get_codec(codec_id).decompressobj()
    try:
        with p.open("rb") as f:
            while True:
                b = f.read(chunk_size)
                if not b:
                    break
                out = dobj.decompress(b)
                h.update(out)
                n += len(out)
        out = dobj.flush()
        h.update(out)
        n += len(out)
    except CODEC_ERRORS as e:
        raise HashMismatch(f"part {p.name}: {codec_id} stream corrupt: {e}") from e
    return h.hexdigest(), n


def _verify_part(out: Path, part: PartEntry, *, full: bool) -> None:
    p = out / part.name
    if not p.is_file():
        raise MissingPart(f"part not found: {p}")

    on_disk = p.stat().st_size
    if on_disk != part.stored_size:
        raise HashMismatch(f"part {part.name}: size on disk {on_disk}, expected {part.stored_size}")

    if not full:
        return

    if not part.compressed:
        if _sha1_file(p) != part.sha1:
            raise HashMismatch(f"part {part.name}: sha1 mismatch")
        return

    if part.codec is None:
        raise CorruptManifest(f"part {part.name}: compressed without codec")
    try:
        get_codec(part.codec)
    except ValueError as e:
        raise CorruptManifest(f"part {part.name}: {e}") from e

    if _sha1_file(p) != part.compressed_sha1:
        raise HashMismatch(f"part {part.name}: compressedSha1 mismatch")
    sha1, n = _sha1_decompressed(p, part.codec)
    if n != part.size:
        raise HashMismatch(f"part {part.name}: decompressed size {n}, expected {part.size}")
    if sha1 != part.sha1:
        raise HashMismatch(f"part {part.name}: sha1 mismatch (decompressed)")


def verify_packed_dir(
    output_dir: Path | str,
    output_name_format: str = PLACEHOLDER,
    *,
    full: bool = False,
) -> PackingResult:
    out = Path(output_dir)
    opts = PackingOptions(output_name_format=output_name_format)
    result = read_manifest(out / opts.manifest_name())

    _check_manifest(result)
    for part in result.file_list:
        _verify_part(out, part, full=full)
    return result
