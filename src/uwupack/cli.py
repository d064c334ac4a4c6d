"""uwupack CLI.

This is the stable CLI entrypoint (console-script: ``uwupack``).

  uwupack pack SRC DST [--max-part-size 512M] [--name-format assets_%d] [--compress] ...
  uwupack verify DST [--name-format assets_%d] [--full]
  uwupack options-validate '{"max_part_size": 1048576}' | @options.json
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path

from uwupack.errors import EXIT_GENERIC, EXIT_USAGE, ConfigurationError, UwuPackError
from uwupack.options import PLACEHOLDER, PackingOptions, load_options_dict

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMG]?)i?B?\s*$", re.IGNORECASE)
_SIZE_MULT = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}


def parse_size(text: str) -> int:
    """Parse ``1048576``, ``512K``, ``100M``, ``2G`` (binary multiples)."""
    m = _SIZE_RE.match(text)
    if not m:
        raise ConfigurationError(f"invalid size: {text!r}")
    n = int(m.group(1)) * _SIZE_MULT[m.group(2).upper()]
    if n <= 0:
        raise ConfigurationError(f"size must be > 0: {text!r}")
    return n


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--debug", action="store_true", help="Show stack traces on errors")


def _build_pack_options(ns: argparse.Namespace) -> PackingOptions:
    # precedence: CLI flags > options document > defaults
    base = PackingOptions.from_mapping(load_options_dict(ns.options)) if ns.options else PackingOptions()
    return base.merged(
        max_part_size=parse_size(ns.max_part_size) if ns.max_part_size is not None else None,
        output_name_format=ns.name_format,
        compress=True if ns.compress else None,
        codec=ns.codec,
        compress_level=ns.level,
    )


def _cmd_pack(ns: argparse.Namespace) -> int:
    from uwupack.packer import pack

    opts = _build_pack_options(ns)
    pack(ns.src_dir, ns.dst_dir, opts, quiet=bool(ns.quiet))
    return 0


def _cmd_verify(ns: argparse.Namespace) -> int:
    from uwupack.verify import verify_packed_dir

    result = verify_packed_dir(ns.dst_dir, ns.name_format or PLACEHOLDER, full=bool(ns.full))
    print(f"OK parts={result.parts} total_size={result.total_size} compressed_size={result.compressed_size}")
    return 0


def _cmd_options_validate(ns: argparse.Namespace) -> int:
    # load is the validation
    load_options_dict(str(ns.options))
    print("OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="uwupack", description="Pack a directory tree into size-bounded parts")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_pack = sub.add_parser("pack", help="Pack a directory into parts + manifest")
    p_pack.add_argument("src_dir", type=Path)
    p_pack.add_argument("dst_dir", type=Path)
    p_pack.add_argument(
        "--options",
        default=None,
        help="Options document (JSON). Use '@file.json' to load from file, or pass JSON inline.",
    )
    p_pack.add_argument(
        "--max-part-size",
        default=None,
        help="Max bytes per part, K/M/G suffixes allowed (default: unbounded, single part)",
    )
    p_pack.add_argument(
        "--name-format",
        default=None,
        help=f"Part/manifest name format, must contain '{PLACEHOLDER}' (default: '{PLACEHOLDER}')",
    )
    p_pack.add_argument("--compress", action="store_true", help="Compress every finalized part")
    p_pack.add_argument("--codec", choices=["gzip", "zstd"], default=None, help="Part codec (default: gzip)")
    p_pack.add_argument("--level", type=int, default=None, help="Compression level (default: codec default)")
    p_pack.add_argument("--quiet", action="store_true", help="No progress output")
    _add_common_args(p_pack)

    p_verify = sub.add_parser("verify", help="Verify a packed output directory against its manifest")
    p_verify.add_argument("dst_dir", type=Path)
    p_verify.add_argument("--name-format", default=None, help="Name format used when packing")
    p_verify.add_argument("--full", action="store_true", help="Recompute sha1 for every part")
    _add_common_args(p_verify)

    p_ov = sub.add_parser("options-validate", help="Validate an options document")
    p_ov.add_argument("options", help="Options JSON (@file.json or inline JSON)")
    _add_common_args(p_ov)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    p = build_parser()
    ns = p.parse_args(argv)

    try:
        if ns.cmd == "pack":
            return _cmd_pack(ns)
        if ns.cmd == "verify":
            return _cmd_verify(ns)
        if ns.cmd == "options-validate":
            return _cmd_options_validate(ns)
        raise AssertionError("unreachable")

    except SystemExit:
        raise
    except UwuPackError as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[uwupack] {e}", file=sys.stderr)
        return int(getattr(e, "exit_code", EXIT_GENERIC) or EXIT_GENERIC)
    except ValueError as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[uwupack] {e}", file=sys.stderr)
        return EXIT_USAGE
    except Exception as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[uwupack] error: {e}", file=sys.stderr)
        return EXIT_GENERIC


if __name__ == "__main__":
    raise SystemExit(main())
