from __future__ import annotations

import gzip
import hashlib
import os
import random
from pathlib import Path

import pytest

from uwupack.errors import ConfigurationError, EnumerationError
from uwupack.manifest import PackingResult, read_manifest
from uwupack.packer import FilePacker, pack
from uwupack.verify import verify_packed_dir

EMPTY_SHA1 = "da39a3ee5e6b4b0d3255bfef95601890afd80709"  # sha1(b"")


@pytest.fixture
def sorted_listing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make directory listing order deterministic (name order)."""
    real = os.listdir
    monkeypatch.setattr("uwupack.walk.os.listdir", lambda d: sorted(real(d)))


def _part_bytes(out_dir: Path, part) -> bytes:
    blob = (out_dir / part.name).read_bytes()
    if part.compressed and part.codec == "gzip":
        return gzip.decompress(blob)
    if part.compressed and part.codec == "zstd":
        import zstandard

        return zstandard.ZstdDecompressor().decompressobj().decompress(blob)
    return blob


def _reconstruct(out_dir: Path, result: PackingResult) -> dict[str, bytes]:
    parts = {p.name: _part_bytes(out_dir, p) for p in result.file_list}
    files: dict[str, bytearray] = {}
    for part, rec in result.iter_records():
        buf = files.setdefault(rec.file_path, bytearray())
        assert len(buf) == rec.file_offset
        data = parts[part.name][rec.package_offset : rec.package_offset + rec.package_size]
        assert len(data) == rec.package_size
        buf += data
    return {k: bytes(v) for k, v in files.items()}


def _tree_bytes(root: Path) -> dict[str, bytes]:
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in root.rglob("*") if p.is_file()}


def _write_random_tree(root: Path, seed: int = 1234) -> None:
    rnd = random.Random(seed)
    (root / "sub" / "deep").mkdir(parents=True)
    (root / "other").mkdir()
    for rel, n in [
        ("a.bin", 1500),
        ("b.txt", 7),
        ("sub/c.bin", 4096),
        ("sub/deep/d.bin", 333),
        ("sub/deep/empty.dat", 0),
        ("other/e.bin", 1000),
    ]:
        (root / rel).write_bytes(rnd.randbytes(n))


def test_pack_splits_file_across_parts(tmp_path: Path, sorted_listing: None) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    (src / "a").write_bytes(b"A" * 700)
    (src / "b").write_bytes(b"B" * 900)

    result = pack(src, out, {"max_part_size": 1000}, quiet=True)

    assert result.parts == 2
    assert result.total_size == 1600
    assert result.compressed_size == 1600

    p1, p2 = result.file_list
    assert p1.name == "001.uwu"
    assert p2.name == "002.uwu"
    assert p1.size == 1000
    assert p2.size == 600

    a1, b1 = p1.file_list
    assert (a1.file_path, a1.file_offset, a1.file_size, a1.package_offset, a1.package_size) == (
        "a", 0, 700, 0, 700,
    )
    assert (b1.file_path, b1.file_offset, b1.file_size, b1.package_offset, b1.package_size) == (
        "b", 0, 900, 700, 300,
    )
    (b2,) = p2.file_list
    assert (b2.file_path, b2.file_offset, b2.file_size, b2.package_offset, b2.package_size) == (
        "b", 300, 900, 0, 600,
    )

    assert (out / "001.uwu").read_bytes() == b"A" * 700 + b"B" * 300
    assert (out / "002.uwu").read_bytes() == b"B" * 600
    assert p1.sha1 == hashlib.sha1(b"A" * 700 + b"B" * 300).hexdigest()
    assert (out / "dat.uwu").is_file()
    assert not list(out.glob("*.tmp"))


def test_pack_empty_dir_yields_one_empty_part(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()

    result = pack(src, out, quiet=True)

    assert result.parts == 1
    assert result.total_size == 0
    (part,) = result.file_list
    assert part.size == 0
    assert part.file_list == ()
    assert part.sha1 == EMPTY_SHA1
    assert (out / "001.uwu").read_bytes() == b""


def test_file_filling_part_exactly_triggers_rollover(tmp_path: Path, sorted_listing: None) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    (src / "a").write_bytes(b"a" * 600)
    (src / "b").write_bytes(b"b" * 400)

    result = pack(src, out, {"max_part_size": 1000}, quiet=True)

    p1 = result.file_list[0]
    assert p1.size == 1000
    b_recs = [r for r in p1.file_list if r.file_path == "b"]
    assert len(b_recs) == 1
    assert b_recs[0].package_size == 400

    # rollover opened part 2, closed empty at the end of the run
    assert result.parts == 2
    assert result.file_list[1].size == 0
    assert result.file_list[1].file_list == ()


def test_file_larger_than_part_spans_parts(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    data = os.urandom(2500)
    (src / "big.bin").write_bytes(data)

    result = pack(src, out, {"max_part_size": 1000}, quiet=True)

    recs = [r for _p, r in result.iter_records()]
    assert len(recs) == 3
    assert [p.size for p in result.file_list] == [1000, 1000, 500]
    for prev, nxt in zip(recs, recs[1:]):
        assert nxt.file_offset == prev.file_offset + prev.package_size
    assert _reconstruct(out, result) == {"big.bin": data}


def test_zero_size_file_has_no_record(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    (src / "empty").write_bytes(b"")
    (src / "x").write_bytes(b"xyz")

    result = pack(src, out, quiet=True)

    assert [r.file_path for _p, r in result.iter_records()] == ["x"]
    assert result.total_size == 3


@pytest.mark.parametrize("max_part_size", [1, 7, 1000, 4096, None])
def test_reconstruction_and_hashes(tmp_path: Path, max_part_size: int | None) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    _write_random_tree(src)

    result = pack(src, out, {"max_part_size": max_part_size}, quiet=True)

    if max_part_size is None:
        assert result.parts == 1

    expected = {k: v for k, v in _tree_bytes(src).items() if v}
    assert _reconstruct(out, result) == expected
    assert sum(p.size for p in result.file_list) == sum(len(v) for v in expected.values())

    for part in result.file_list:
        assert part.size == sum(r.package_size for r in part.file_list)
        assert not part.compressed
        assert part.compressed_sha1 is None
        assert part.compressed_size is None
        blob = (out / part.name).read_bytes()
        assert len(blob) == part.size
        assert hashlib.sha1(blob).hexdigest() == part.sha1
        if max_part_size is not None:
            assert part.size <= max_part_size


def test_compressed_parts_gzip(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    _write_random_tree(src)
    (src / "text.txt").write_bytes(b"hello uwu\n" * 500)

    result = pack(src, out, {"max_part_size": 2048, "compress": True}, quiet=True)

    assert not list(out.glob("*.tmp"))
    for part in result.file_list:
        blob = (out / part.name).read_bytes()
        assert part.compressed
        assert part.codec == "gzip"
        assert part.compressed_size == len(blob)
        assert part.compressed_sha1 == hashlib.sha1(blob).hexdigest()
        assert hashlib.sha1(gzip.decompress(blob)).hexdigest() == part.sha1

    assert result.compressed_size == sum(p.compressed_size for p in result.file_list)
    assert result.total_size == sum(p.size for p in result.file_list)
    expected = {k: v for k, v in _tree_bytes(src).items() if v}
    assert _reconstruct(out, result) == expected


def test_compressed_parts_zstd(tmp_path: Path) -> None:
    pytest.importorskip("zstandard")
    src = tmp_path / "src"
    out = tmp_path / "out"
    _write_random_tree(src)

    result = pack(src, out, {"max_part_size": 3000, "compress": True, "codec": "zstd"}, quiet=True)

    assert all(p.codec == "zstd" for p in result.file_list)
    expected = {k: v for k, v in _tree_bytes(src).items() if v}
    assert _reconstruct(out, result) == expected


def test_manifest_matches_returned_result(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    _write_random_tree(src)

    result = pack(src, out, {"max_part_size": 999, "output_name_format": "assets_%d"}, quiet=True)

    assert result.file_list[0].name == "assets_001.uwu"
    loaded = read_manifest(out / "assets_dat.uwu")
    assert loaded.to_dict() == result.to_dict()


def test_missing_placeholder_fails_before_touching_fs(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    (src / "a").write_bytes(b"a")

    with pytest.raises(ConfigurationError):
        pack(src, out, {"output_name_format": "part"}, quiet=True)
    assert not out.exists()


def test_missing_source_dir_raises_enumeration_error(tmp_path: Path) -> None:
    with pytest.raises(EnumerationError):
        pack(tmp_path / "nope", tmp_path / "out", quiet=True)


def test_progress_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.txt").write_bytes(b"abc")

    FilePacker({"compress": True}).pack(src, tmp_path / "out")

    stdout = capsys.readouterr().out
    assert "pack: writing a.txt (3 bytes)" in stdout
    assert "pack: compressing" in stdout
    assert "pack: parts=1 total_size=3" in stdout


def _undecodable_name(src: Path) -> Path:
    p = src / os.fsdecode(b"caf\xe9.bin")
    try:
        p.write_bytes(b"0123456789")
    except (OSError, UnicodeError):
        pytest.skip("filesystem rejects non-UTF-8 file names")
    return p


def test_pack_non_utf8_file_name(tmp_path: Path) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    name = _undecodable_name(src).name

    result = pack(src, out, {"max_part_size": 4}, quiet=True)

    assert [p.size for p in result.file_list] == [4, 4, 2]
    assert b"\\udce9" in gzip.decompress((out / "dat.uwu").read_bytes())
    loaded = read_manifest(out / "dat.uwu")
    assert loaded.to_dict() == result.to_dict()
    assert {r.file_path for _, r in loaded.iter_records()} == {name}
    assert _reconstruct(out, loaded) == {name: b"0123456789"}


def test_progress_output_non_utf8_file_name(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    src = tmp_path / "src"
    src.mkdir()
    _undecodable_name(src)

    FilePacker({"max_part_size": 4}).pack(src, tmp_path / "out")

    assert "pack: writing caf\\udce9.bin (10 bytes)" in capsys.readouterr().out


def test_output_name_format_with_subdirectory(tmp_path: Path, sorted_listing: None) -> None:
    src = tmp_path / "src"
    out = tmp_path / "out"
    _write_random_tree(src)

    result = pack(src, out, {"max_part_size": 2000, "output_name_format": "pak/%d"}, quiet=True)

    assert [p.name for p in result.file_list] == ["pak/001.uwu", "pak/002.uwu", "pak/003.uwu", "pak/004.uwu"]
    assert (out / "pak" / "001.uwu").is_file()
    assert read_manifest(out / "pak" / "dat.uwu").to_dict() == result.to_dict()
    assert _reconstruct(out, result) == _tree_bytes(src)
    verify_packed_dir(out, "pak/%d", full=True)
