from __future__ import annotations

import os
import stat
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from uwupack.errors import EnumerationError


@dataclass(frozen=True)
class SourceFile:
    path: Path
    size: int


def iter_source_files(root: Path | str) -> Iterator[SourceFile]:
    """Yield every non-directory entry under ``root``, depth-first.

    Entries come in ``os.listdir`` order (no sorting). Symlinks and special
    files are yielded when stat (following links) says they are not a
    directory. Lazy: nothing is listed until the first ``next()``.
    """
    base = Path(root).absolute()
    yield from _walk(base)


def _walk(d: Path) -> Iterator[SourceFile]:
    try:
        names = os.listdir(d)
    except OSError as e:
        raise EnumerationError(f"cannot list directory: {d}: {e}") from e

    for name in names:
        p = d / name
        try:
            st = os.stat(p)
        except OSError as e:
            raise EnumerationError(f"cannot stat: {p}: {e}") from e

        if stat.S_ISDIR(st.st_mode):
            yield from _walk(p)
        else:
            yield SourceFile(path=p, size=int(st.st_size))
