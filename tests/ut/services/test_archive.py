"""归档编解码测试"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from lfsforge.core.exceptions import ArchiveError, ArchiveNotFound
from lfsforge.utils.archive import (
    compression_of,
    create_archive,
    open_archive,
    package_filename,
    parse_package_filename,
    sha256_file,
)


class TestParsePackageFilename:
    @pytest.mark.parametrize("filename, expected", [
        ("gcc-16.0.1.pkg.tar.xz", ("gcc", "16.0.1")),
        ("toolkit.tar.gz", ("toolkit", "unknown")),
        ("binutils-pass1-2.43.1.pkg.tar.zst", ("binutils-pass1", "2.43.1")),
        ("xz-5.6.3.tar.bz2", ("xz", "5.6.3")),
        ("/mnt/lfs/pkg/zlib-1.3.1.pkg.tar.xz", ("zlib", "1.3.1")),
        ("linux-6.12-rc1.tgz", ("linux", "6.12-rc1")),
        ("mystery", ("mystery", "unknown")),
    ])
    def test_parse(self, filename: str, expected: tuple[str, str]) -> None:
        assert parse_package_filename(filename) == expected

    def test_package_filename(self) -> None:
        assert package_filename("gcc", "14.2.0", "zst") == "gcc-14.2.0.pkg.tar.zst"

    def test_compression_of(self) -> None:
        assert compression_of("a-1.pkg.tar.zst") == "zst"
        assert compression_of("a-1.tgz") == "gz"
        assert compression_of("a-1.tar") == ""


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "tree"
    (root / "usr" / "bin").mkdir(parents=True)
    (root / "usr" / "bin" / "hello").write_text("#!/bin/sh\necho hi\n")
    (root / "usr" / "lib").mkdir()
    (root / "usr" / "lib" / "libhello.so.1").write_text("elf")
    os.symlink("libhello.so.1", root / "usr" / "lib" / "libhello.so")
    return root


class TestCreateArchive:
    @pytest.mark.parametrize("comp", ["xz", "gz", "bz2", "zst"])
    def test_members(self, tree: Path, tmp_path: Path, comp: str) -> None:
        dest = create_archive(tree, tmp_path / package_filename("hello", "1.0", comp), comp)
        with open_archive(dest) as tar:
            names = tar.getnames()
            link = tar.getmember("usr/lib/libhello.so")
        assert names[0] == "usr"
        assert set(names) == {
            "usr", "usr/bin", "usr/lib", "usr/bin/hello",
            "usr/lib/libhello.so", "usr/lib/libhello.so.1",
        }
        assert link.issym() and link.linkname == "libhello.so.1"

    def test_no_temp_left(self, tree: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        create_archive(tree, out / "hello-1.0.pkg.tar.xz")
        assert [p.name for p in out.iterdir()] == ["hello-1.0.pkg.tar.xz"]

    def test_unknown_compression(self, tree: Path, tmp_path: Path) -> None:
        with pytest.raises(ArchiveError):
            create_archive(tree, tmp_path / "x.pkg.tar.lz", "lz")

    def test_missing_tree(self, tmp_path: Path) -> None:
        with pytest.raises(ArchiveError):
            create_archive(tmp_path / "none", tmp_path / "x.pkg.tar.xz")


class TestOpenArchive:
    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ArchiveNotFound):
            with open_archive(tmp_path / "none.tar.xz"):
                pass

    @pytest.mark.parametrize("name", ["bad-1.0.pkg.tar.xz", "bad-1.0.pkg.tar.zst"])
    def test_corrupt(self, tmp_path: Path, name: str) -> None:
        p = tmp_path / name
        p.write_bytes(b"definitely not an archive")
        with pytest.raises(ArchiveError):
            with open_archive(p):
                pass


class TestSha256:
    def test_digest(self, tmp_path: Path) -> None:
        p = tmp_path / "f"
        p.write_bytes(b"abc")
        assert sha256_file(p) == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
