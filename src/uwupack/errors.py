"""Typed errors for uwupack.

Single source of truth for exit codes lives here.

Policy:
- Errors are small and boring.
- Nothing is recovered locally: every error aborts the whole pack and reaches
  the caller of ``pack()``.
- The CLI maps errors to stable exit codes (see EXIT_* constants).
- docs/exit_codes.md is generated from this module (scripts/gen_exit_codes_md.py).
"""

from __future__ import annotations

from dataclasses import dataclass

# -------------------------
# Exit codes (single source)
# -------------------------

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_GENERIC = 10
EXIT_MISSING_PART = 12
EXIT_HASH_MISMATCH = 13
EXIT_ENUMERATION = 14
EXIT_STREAM_IO = 15


@dataclass(frozen=True, slots=True)
class ExitCodeInfo:
    code: int
    name: str
    description: str


EXIT_CODES: tuple[ExitCodeInfo, ...] = (
    ExitCodeInfo(EXIT_OK, "OK", "Success"),
    ExitCodeInfo(EXIT_USAGE, "USAGE", "Usage/config error (invalid args, invalid options, missing %d placeholder)"),
    ExitCodeInfo(EXIT_GENERIC, "GENERIC", "Generic failure (corrupt manifest, unexpected error, etc.)"),
    ExitCodeInfo(EXIT_MISSING_PART, "MISSING_PART", "Manifest or a part file it lists is missing"),
    ExitCodeInfo(EXIT_HASH_MISMATCH, "HASH_MISMATCH", "Integrity failure (sha1 or size mismatch on a part)"),
    ExitCodeInfo(EXIT_ENUMERATION, "ENUMERATION", "Source tree could not be listed or stat'd"),
    ExitCodeInfo(EXIT_STREAM_IO, "STREAM_IO", "I/O failure while copying, compressing, renaming or deleting"),
)

_EXIT_CODE_BY_CODE: dict[int, ExitCodeInfo] = {e.code: e for e in EXIT_CODES}


def exit_code_info(code: int) -> ExitCodeInfo | None:
    return _EXIT_CODE_BY_CODE.get(int(code))


def render_exit_codes_markdown() -> str:
    """Render docs/exit_codes.md content."""
    lines: list[str] = []
    lines.append("# Exit codes\n")
    lines.append("> GENERATED FILE, do not edit manually.\n")
    lines.append("> Source of truth: `src/uwupack/errors.py` (EXIT_CODES).\n")
    lines.append("> Regenerate: `python scripts/gen_exit_codes_md.py`.\n\n")
    lines.append("These are the CLI exit codes you can rely on.\n\n")
    lines.append("| Code | Name | Meaning |\n")
    lines.append("|---:|---|---|\n")
    for e in sorted(EXIT_CODES, key=lambda x: x.code):
        lines.append(f"| {e.code} | `{e.name}` | {e.description} |\n")
    lines.append("\n## Notes\n")
    lines.append("- Every internal error extends `UwuPackError` and carries an `exit_code`.\n")
    lines.append("- `--debug` re-raises errors to show full stack traces.\n")
    lines.append(
        "- A failed `pack` leaves partial files behind: treat the destination directory as incomplete.\n"
    )
    return "".join(lines)


# ---------------
# Typed exceptions
# ---------------


class UwuPackError(Exception):
    """Base error for uwupack."""

    exit_code: int = EXIT_GENERIC


class ConfigurationError(UwuPackError):
    """Invalid packing options. Raised before any filesystem mutation."""

    exit_code = EXIT_USAGE


class EnumerationError(UwuPackError):
    exit_code = EXIT_ENUMERATION


class StreamIOError(UwuPackError):
    """Read/write/rename/delete/compress failure, or a short copy."""

    exit_code = EXIT_STREAM_IO


class CorruptManifest(UwuPackError):
    exit_code = EXIT_GENERIC


class MissingPart(UwuPackError):
    exit_code = EXIT_MISSING_PART


class HashMismatch(UwuPackError):
    exit_code = EXIT_HASH_MISMATCH
