"""PackageDatabase 单元测试（fay 兼容布局）"""

from __future__ import annotations

import io
import os
import tarfile
from pathlib import Path

import pytest

from lfsforge.core.exceptions import (
    ArchiveNotFound,
    FileConflict,
    NotInstalled,
    PathContainmentViolation,
)
from lfsforge.core.models import PackageManifest
from lfsforge.services.package_db import PackageDatabase, normalize_member
from lfsforge.utils.archive import create_archive


def _build_archive(tmp_path: Path, filename: str, files: dict[str, str],
                   symlinks: dict[str, str] | None = None) -> Path:
    tree = tmp_path / f"tree-{filename}"
    for rel, content in files.items():
        p = tree / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content)
    for rel, target in (symlinks or {}).items():
        p = tree / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target, p)
    comp = filename.rsplit(".", 1)[-1]
    return create_archive(tree, tmp_path / filename, comp)


def _raw_archive(path: Path, members: list[tarfile.TarInfo]) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for info in members:
            data = b"x" if info.isreg() else None
            if data is not None:
                info.size = len(data)
            tar.addfile(info, io.BytesIO(data) if data is not None else None)
    return path


@pytest.fixture
def db(lfs_root: Path) -> PackageDatabase:
    return PackageDatabase(lfs_root)


@pytest.fixture
def hello(tmp_path: Path) -> Path:
    return _build_archive(
        tmp_path, "hello-2.12.pkg.tar.xz",
        {"usr/bin/hello": "bin", "usr/share/doc/hello/README": "doc"},
        symlinks={"usr/bin/hi": "hello"},
    )


class TestNormalizeMember:
    @pytest.mark.parametrize("raw, expected", [
        ("./usr/bin", "usr/bin"),
        ("/usr/bin/", "usr/bin"),
        ("usr//lib/./x", "usr/lib/x"),
        (".", ""),
        ("./", ""),
    ])
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_member(raw) == expected


class TestInstall:
    def test_install_records(self, db: PackageDatabase, lfs_root: Path, hello: Path) -> None:
        rec = db.install(hello)
        assert (rec.name, rec.version) == ("hello", "2.12")
        assert (lfs_root / "usr/bin/hello").read_text() == "bin"
        assert os.readlink(lfs_root / "usr/bin/hi") == "hello"
        assert "usr/bin/hello" in rec.files
        assert "usr/share/doc/hello/README" in rec.files
        assert rec.files.index("usr") < rec.files.index("usr/bin/hello")

        info = lfs_root / "var/lib/fay/hello/info"
        assert info.read_text().splitlines() == ["hello", "2.12"]
        files = (lfs_root / "var/lib/fay/hello/files").read_text().splitlines()
        assert files == rec.files

    def test_query_list_files(self, db: PackageDatabase, hello: Path) -> None:
        db.install(hello)
        assert db.is_installed("hello")
        assert db.query("hello") == ("hello", "2.12")
        assert db.list() == ["hello"]
        assert "usr/bin/hi" in db.files("hello")

    def test_reinstall_same_package(self, db: PackageDatabase, lfs_root: Path, hello: Path) -> None:
        db.install(hello)
        (lfs_root / "usr/bin/hello").write_text("modified")
        db.install(hello)
        assert (lfs_root / "usr/bin/hello").read_text() == "bin"

    def test_upgrade_overwrites_record(self, db: PackageDatabase, tmp_path: Path, hello: Path) -> None:
        db.install(hello)
        newer = _build_archive(tmp_path, "hello-2.13.pkg.tar.gz", {"usr/bin/hello": "v2"})
        db.install(newer)
        assert db.query("hello") == ("hello", "2.13")
        assert "usr/share/doc/hello/README" not in db.files("hello")

    def test_unknown_version(self, db: PackageDatabase, tmp_path: Path) -> None:
        archive = _build_archive(tmp_path, "toolkit.tar.gz", {"opt/toolkit/run": "x"})
        rec = db.install(archive)
        assert (rec.name, rec.version) == ("toolkit", "unknown")

    def test_missing_archive(self, db: PackageDatabase, tmp_path: Path) -> None:
        with pytest.raises(ArchiveNotFound):
            db.install(tmp_path / "ghost-1.0.pkg.tar.xz")

    def test_root_member_not_recorded(self, db: PackageDatabase, tmp_path: Path) -> None:
        root_dir = tarfile.TarInfo(".")
        root_dir.type = tarfile.DIRTYPE
        root_dir.mode = 0o755
        f = tarfile.TarInfo("./etc/motd")
        archive = _raw_archive(tmp_path / "motd-1.0.tar.gz", [root_dir, f])
        rec = db.install(archive)
        assert rec.files == ["etc/motd"]

    def test_replaces_existing_symlink(self, db: PackageDatabase, lfs_root: Path,
                                       tmp_path: Path) -> None:
        host_file = tmp_path / "host-file"
        host_file.write_text("host")
        (lfs_root / "etc").mkdir()
        os.symlink(host_file, lfs_root / "etc" / "motd")
        archive = _build_archive(tmp_path, "motd-1.0.pkg.tar.gz", {"etc/motd": "guest"})
        db.install(archive)
        assert host_file.read_text() == "host"
        assert not (lfs_root / "etc/motd").is_symlink()
        assert (lfs_root / "etc/motd").read_text() == "guest"


class TestContainment:
    def test_parent_traversal(self, db: PackageDatabase, lfs_root: Path, tmp_path: Path) -> None:
        archive = _raw_archive(tmp_path / "evil-1.0.tar.gz", [tarfile.TarInfo("../escape")])
        with pytest.raises(PathContainmentViolation):
            db.install(archive)
        assert not (lfs_root.parent / "escape").exists()
        assert not db.is_installed("evil")

    def test_symlink_dir_escape(self, db: PackageDatabase, lfs_root: Path, tmp_path: Path) -> None:
        outside = tmp_path / "host-etc"
        outside.mkdir()
        os.symlink(outside, lfs_root / "etc")
        archive = _build_archive(tmp_path, "cfg-1.0.pkg.tar.gz", {"etc/passwd": "root"})
        with pytest.raises(PathContainmentViolation):
            db.install(archive)
        assert list(outside.iterdir()) == []

    def test_hardlink_outside(self, db: PackageDatabase, tmp_path: Path) -> None:
        link = tarfile.TarInfo("usr/bin/sh")
        link.type = tarfile.LNKTYPE
        link.linkname = "../../etc/shadow"
        archive = _raw_archive(tmp_path / "lnk-1.0.tar.gz", [link])
        with pytest.raises(PathContainmentViolation):
            db.install(archive)


class TestFileConflict:
    def test_conflict_detected(self, db: PackageDatabase, tmp_path: Path, hello: Path) -> None:
        db.install(hello)
        other = _build_archive(tmp_path, "other-1.0.pkg.tar.gz", {"usr/bin/hello": "other"})
        with pytest.raises(FileConflict) as exc:
            db.install(other)
        assert exc.value.conflicts == {"usr/bin/hello": "hello"}
        assert not db.is_installed("other")

    def test_shared_directories_allowed(self, db: PackageDatabase, tmp_path: Path,
                                        hello: Path) -> None:
        db.install(hello)
        other = _build_archive(tmp_path, "other-1.0.pkg.tar.gz", {"usr/bin/other": "x"})
        db.install(other)
        assert db.owner("/usr/bin/other") == "other"
        assert db.owner("usr/bin/hello") == "hello"

    def test_conflicts_disabled(self, lfs_root: Path, tmp_path: Path, hello: Path) -> None:
        db = PackageDatabase(lfs_root, detect_conflicts=False)
        db.install(hello)
        other = _build_archive(tmp_path, "other-1.0.pkg.tar.gz", {"usr/bin/hello": "other"})
        db.install(other)
        assert (lfs_root / "usr/bin/hello").read_text() == "other"

    def test_index_built_from_disk(self, lfs_root: Path, tmp_path: Path, hello: Path) -> None:
        PackageDatabase(lfs_root).install(hello)
        fresh = PackageDatabase(lfs_root)
        assert fresh.owner("usr/bin/hello") == "hello"

    def test_upgrade_releases_dropped_paths(self, db: PackageDatabase, tmp_path: Path,
                                            hello: Path) -> None:
        assert db.owner("usr/bin/hello") is None
        db.install(hello)
        newer = _build_archive(tmp_path, "hello-2.13.pkg.tar.gz", {"usr/bin/hello": "v2"})
        db.install(newer)
        assert db.owner("usr/share/doc/hello/README") is None
        docs = _build_archive(
            tmp_path, "hello-doc-1.0.pkg.tar.gz", {"usr/share/doc/hello/README": "doc"},
        )
        db.install(docs)
        assert db.owner("usr/share/doc/hello/README") == "hello-doc"
        assert db.owner("usr/bin/hello") == "hello"


class TestRemove:
    def test_remove(self, db: PackageDatabase, lfs_root: Path, hello: Path) -> None:
        db.install(hello)
        db.remove("hello")
        assert not (lfs_root / "usr/bin/hello").exists()
        assert not (lfs_root / "usr/bin/hi").is_symlink()
        assert not (lfs_root / "usr").exists()
        assert not (lfs_root / "var/lib/fay/hello").exists()
        assert db.list() == []
        assert db.owner("usr/bin/hello") is None

    def test_shared_directory_kept(self, db: PackageDatabase, lfs_root: Path, hello: Path) -> None:
        db.install(hello)
        (lfs_root / "usr/bin/keep").write_text("not owned")
        db.remove("hello")
        assert (lfs_root / "usr/bin/keep").exists()
        assert not (lfs_root / "usr/share").exists()

    def test_directory_symlink_kept(self, db: PackageDatabase, lfs_root: Path,
                                    tmp_path: Path) -> None:
        (lfs_root / "usr/lib").mkdir(parents=True)
        os.symlink("usr/lib", lfs_root / "lib")
        archive = _build_archive(tmp_path, "libfoo-1.0.pkg.tar.gz", {"lib/libfoo.so": "elf"})
        db.install(archive)
        assert (lfs_root / "usr/lib/libfoo.so").is_file()
        db.remove("libfoo")
        assert (lfs_root / "lib").is_symlink()
        assert not (lfs_root / "usr/lib/libfoo.so").exists()

    def test_missing_files_tolerated(self, db: PackageDatabase, lfs_root: Path, hello: Path) -> None:
        db.install(hello)
        (lfs_root / "usr/bin/hello").unlink()
        db.remove("hello")
        assert not db.is_installed("hello")

    def test_install_remove_round_trip(self, db: PackageDatabase, lfs_root: Path,
                                       hello: Path) -> None:
        before = sorted(str(p.relative_to(lfs_root)) for p in lfs_root.rglob("*"))
        db.install(hello)
        db.remove("hello")
        after = sorted(
            str(p.relative_to(lfs_root)) for p in lfs_root.rglob("*")
            if not str(p.relative_to(lfs_root)).startswith("var")
        )
        assert after == before


class TestNotInstalled:
    @pytest.mark.parametrize("op", ["query", "files", "remove", "record"])
    def test_unknown(self, db: PackageDatabase, op: str) -> None:
        with pytest.raises(NotInstalled) as exc:
            getattr(db, op)("ghost")
        assert exc.value.code == "NOT_INSTALLED"

    @pytest.mark.parametrize("name", ["", "..", "a/b"])
    def test_bad_names(self, db: PackageDatabase, name: str) -> None:
        assert not db.is_installed(name)


class TestSatisfied:
    def _m(self, provides: list[str]) -> PackageManifest:
        return PackageManifest(name="zlib", version="1", url="https://x/z.tar.gz", provides=provides)

    def test_empty_provides(self, db: PackageDatabase) -> None:
        assert not db.satisfied(self._m([]))

    def test_all_present(self, db: PackageDatabase, lfs_root: Path) -> None:
        (lfs_root / "usr/lib").mkdir(parents=True)
        (lfs_root / "usr/lib/libz.so").write_text("x")
        os.symlink("missing-target", lfs_root / "usr/lib/libz.so.1")
        assert db.satisfied(self._m(["/usr/lib/libz.so", "/usr/lib/libz.so.1"]))

    def test_partial(self, db: PackageDatabase, lfs_root: Path) -> None:
        (lfs_root / "usr/lib").mkdir(parents=True)
        (lfs_root / "usr/lib/libz.so").write_text("x")
        assert not db.satisfied(self._m(["/usr/lib/libz.so", "/usr/include/zlib.h"]))

    def test_independent_of_records(self, db: PackageDatabase, lfs_root: Path) -> None:
        (lfs_root / "usr/bin").mkdir(parents=True)
        (lfs_root / "usr/bin/xz").write_text("x")
        assert db.satisfied(PackageManifest(
            name="xz", version="1", url="https://x/xz.tar.xz", provides=["/usr/bin/xz"],
        ))
        assert not db.is_installed("xz")
