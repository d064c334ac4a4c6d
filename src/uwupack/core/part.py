"""Part writer and part finalizer.

A part lives in two states:
  open    bytes go to ``<name>.tmp``, the running sha1 follows every byte
  sealed  sha1 final, ``<name>`` produced (renamed or compressed), no writes

Each copy step opens exactly one read handle (source file) and one write
handle (temp part) and closes both before returning, errors included.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from uwupack.core.part_codec import CODEC_ERRORS, CodecGzip, CodecZstd
from uwupack.errors import StreamIOError
from uwupack.manifest import FileRecord, PartEntry
from uwupack.walk import SourceFile

TMP_SUFFIX = ".tmp"


class PartWriter:
    def __init__(self, path: Path, *, chunk_size: int, name: str | None = None) -> None:
        self.path = Path(path)
        # name as recorded in the manifest, relative to the output dir
        self._name = name or self.path.name
        self.tmp_path = self.path.with_name(self.path.name + TMP_SUFFIX)
        self.chunk_size = int(chunk_size)
        self.size = 0
        self._hash = hashlib.sha1()
        self._records: list[FileRecord] = []
        self._sealed = False

        # Start from an empty temp file: a part with no bytes must still exist,
        # and leftovers of an aborted run must not leak in.
        try:
            self.tmp_path.parent.mkdir(parents=True, exist_ok=True)
            self.tmp_path.open("wb").close()
        except OSError as e:
            raise StreamIOError(f"cannot create part: {self.tmp_path}: {e}") from e

    @property
    def name(self) -> str:
        return self._name

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def records(self) -> tuple[FileRecord, ...]:
        return tuple(self._records)

    def write_range(self, src: SourceFile, rel: str, offset: int, length: int) -> FileRecord:
        """Copy ``src[offset:offset + length]`` to the end of this part."""
        if self._sealed:
            raise ValueError(f"PartWriter: write on sealed part {self.name}")
        if offset < 0 or length <= 0:
            raise ValueError(f"PartWriter: invalid range offset={offset} length={length}")

        remaining = length
        try:
            with open(src.path, "rb") as fin, self.tmp_path.open("ab") as fout:
                fin.seek(offset)
                while remaining > 0:
                    chunk = fin.read(min(self.chunk_size, remaining))
                    if not chunk:
                        break
                    fout.write(chunk)
                    self._hash.update(chunk)
                    remaining -= len(chunk)
        except OSError as e:
            raise StreamIOError(f"copy failed: {src.path} -> {self.tmp_path}: {e}") from e

        if remaining != 0:
            raise StreamIOError(
                f"short read: {src.path} [{offset}, {offset + length}) "
                f"copied {length - remaining} of {length} bytes"
            )

        rec = FileRecord(
            file_path=rel,
            file_offset=offset,
            file_size=src.size,
            package_offset=self.size,
            package_size=length,
        )
        self._records.append(rec)
        self.size += length
        return rec

    def seal(self) -> str:
        """Close the part for writing and return the hex sha1 of its bytes."""
        if self._sealed:
            raise ValueError(f"PartWriter: part {self.name} already sealed")
        self._sealed = True
        return self._hash.hexdigest()


def finalize_part(
    part: PartWriter,
    codec: CodecGzip | CodecZstd | None,
    *,
    quiet: bool = False,
) -> PartEntry:
    """Seal ``part`` and produce its final file.

    codec=None: rename ``<name>.tmp`` to ``<name>``.
    Otherwise: stream the temp file through the codec into ``<name>``,
    hashing and counting the compressed bytes, then delete the temp file.
    """
    sha1 = part.seal()

    if codec is None:
        try:
            os.replace(part.tmp_path, part.path)
        except OSError as e:
            raise StreamIOError(f"rename failed: {part.tmp_path} -> {part.path}: {e}") from e
        return PartEntry(
            name=part.name,
            sha1=sha1,
            size=part.size,
            compressed=False,
            file_list=part.records,
        )

    if not quiet:
        print(f"pack: compressing {part.path} ({codec.codec_id} level={codec.level})")

    h = hashlib.sha1()
    n_in = 0
    n_out = 0
    cobj = codec.compressobj()
    try:
        with part.tmp_path.open("rb") as fin, part.path.open("wb") as fout:
            while True:
                chunk = fin.read(part.chunk_size)
                if not chunk:
                    break
                n_in += len(chunk)
                out = cobj.compress(chunk)
                if out:
                    fout.write(out)
                    h.update(out)
                    n_out += len(out)
            out = cobj.flush()
            if out:
                fout.write(out)
                h.update(out)
                n_out += len(out)
    except OSError as e:
        raise StreamIOError(f"compress failed: {part.tmp_path} -> {part.path}: {e}") from e
    except CODEC_ERRORS as e:
        raise StreamIOError(f"compress failed ({codec.codec_id}): {part.path}: {e}") from e

    if n_in != part.size:
        raise StreamIOError(f"short read: {part.tmp_path} has {n_in} bytes, expected {part.size}")

    try:
        part.tmp_path.unlink()
    except OSError as e:
        raise StreamIOError(f"cannot delete temp part: {part.tmp_path}: {e}") from e

    return PartEntry(
        name=part.name,
        sha1=sha1,
        size=part.size,
        compressed=True,
        file_list=part.records,
        compressed_sha1=h.hexdigest(),
        compressed_size=n_out,
        codec=codec.codec_id,
    )
