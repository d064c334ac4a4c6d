#!/usr/bin/env python3
"""Write (or check) docs/exit_codes.md from uwupack.errors.EXIT_CODES.

  python scripts/gen_exit_codes_md.py            # rewrite the doc
  python scripts/gen_exit_codes_md.py --check    # exit 1 if the doc is stale
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO = Path(__file__).resolve().parents[1]
DEFAULT_DOC = REPO / "docs" / "exit_codes.md"


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="gen_exit_codes_md")
    ap.add_argument("--check", action="store_true", help="compare instead of writing; exit 1 when stale")
    ap.add_argument("--output", type=Path, default=DEFAULT_DOC, help="doc path (default: docs/exit_codes.md)")
    args = ap.parse_args(argv)

    sys.path.insert(0, str(REPO / "src"))
    from uwupack import errors  # noqa: E402

    rendered = errors.render_exit_codes_markdown()
    out: Path = args.output

    if args.check:
        current = out.read_text(encoding="utf-8") if out.is_file() else None
        if current != rendered:
            print(
                f"[uwupack] {out} is stale (EXIT_CODES changed?): run scripts/gen_exit_codes_md.py",
                file=sys.stderr,
            )
            return 1
        print(f"[uwupack] {out} is up to date ({len(errors.EXIT_CODES)} codes)")
        return 0

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(rendered, encoding="utf-8")
    print(f"[uwupack] wrote {out} ({len(errors.EXIT_CODES)} codes)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
