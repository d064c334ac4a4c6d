"""Packing engine.

Packs a directory tree into size-bounded parts plus a manifest:

  <dst_dir>/
    001.uwu, 002.uwu, ...   # concatenated byte ranges (optionally compressed)
    dat.uwu                 # gzip JSON manifest (PackingResult)

Names follow ``output_name_format`` (``%d`` -> part index / ``dat``).

Processing is strictly sequential: files in enumeration order, ranges in
ascending offset order. Any error aborts the run and leaves partial files
in ``dst_dir``.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from uwupack.core.part import PartWriter, finalize_part
from uwupack.errors import StreamIOError
from uwupack.manifest import PackingResult, write_manifest
from uwupack.options import PackingOptions, coerce_options
from uwupack.walk import SourceFile, iter_source_files


def _printable(rel: str) -> str:
    # undecodable name bytes come back from os.listdir as lone surrogates
    return rel.encode("utf-8", "backslashreplace").decode("utf-8")


class FilePacker:
    def __init__(self, options: PackingOptions | Mapping[str, Any] | None = None, *, quiet: bool = False):
        # validated here, before any filesystem access
        self.options = coerce_options(options)
        self.quiet = quiet
        self.result = PackingResult()
        self._codec = self.options.part_codec() if self.options.compress else None
        self._dst_dir: Path | None = None
        self._current: PartWriter | None = None

    def _say(self, msg: str) -> None:
        if not self.quiet:
            print(msg)

    def _open_next_part(self) -> PartWriter:
        assert self._dst_dir is not None
        index = len(self.result.file_list) + 1
        name = self.options.part_name(index)
        return PartWriter(self._dst_dir / name, chunk_size=self.options.chunk_size, name=name)

    def _finalize_current(self) -> None:
        assert self._current is not None
        entry = finalize_part(self._current, self._codec, quiet=self.quiet)
        self.result.add_part(entry)
        self._current = None

    def _capacity(self, part: PartWriter) -> int | None:
        if self.options.max_part_size is None:
            return None
        return self.options.max_part_size - part.size

    def _pack_file(self, src_root: Path, src: SourceFile) -> None:
        rel = src.path.relative_to(src_root).as_posix()
        self._say(f"pack: writing {_printable(rel)} ({src.size} bytes)")

        read = 0
        while read < src.size:
            assert self._current is not None
            part = self._current

            cap = self._capacity(part)
            want = src.size - read if cap is None else min(src.size - read, cap)

            part.write_range(src, rel, read, want)
            read += want

            if self.options.max_part_size is not None and part.size == self.options.max_part_size:
                self._finalize_current()
                self._current = self._open_next_part()

    def pack(self, src_dir: Path | str, dst_dir: Path | str) -> PackingResult:
        src_root = Path(src_dir).absolute()
        dst = Path(dst_dir)
        try:
            dst.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StreamIOError(f"cannot create output directory: {dst}: {e}") from e
        self._dst_dir = dst

        self._current = self._open_next_part()
        for src in iter_source_files(src_root):
            self._pack_file(src_root, src)

        # The last part is closed even when partially filled (or empty).
        self._finalize_current()

        self.result.parts = len(self.result.file_list)

        manifest_path = dst / self.options.manifest_name()
        write_manifest(self.result, manifest_path)

        self._say(
            f"pack: parts={self.result.parts} total_size={self.result.total_size} "
            f"compressed_size={self.result.compressed_size}"
        )
        self._say(f"pack: manifest -> {manifest_path}")
        return self.result


def pack(
    src_dir: Path | str,
    dst_dir: Path | str,
    options: PackingOptions | Mapping[str, Any] | None = None,
    *,
    quiet: bool = False,
) -> PackingResult:
    """Pack ``src_dir`` into parts + manifest under ``dst_dir``.

    Returns the PackingResult also written as the manifest. Raises
    ConfigurationError (before touching the filesystem), EnumerationError
    or StreamIOError.
    """
    packer = FilePacker(options, quiet=quiet)
    return packer.pack(src_dir, dst_dir)
