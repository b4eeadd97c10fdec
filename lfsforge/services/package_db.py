"""最小包数据库（fay 兼容）

记录目标根目录中每个已安装包的文件清单，支持 install / remove / query / files / list。

持久化布局（与 fay 一致）:
    <root>/var/lib/fay/<name>/info    两行: name, version
    <root>/var/lib/fay/<name>/files   每行一个相对根目录的路径，按解包顺序

在原行为之上新增全局 path → owner 索引：安装时若非目录路径已被其他包占有，
抛出 FileConflict（detect_conflicts=False 时恢复原来的静默覆盖）。
"""

from __future__ import annotations

import logging
import os
import tarfile
from pathlib import Path

from lfsforge.core.exceptions import (
    ArchiveError,
    FileConflict,
    NotInstalled,
    PathContainmentViolation,
)
from lfsforge.core.models import InstalledPackageRecord, PackageManifest
from lfsforge.core.safety import RootGuard
from lfsforge.utils.archive import open_archive, parse_package_filename
from lfsforge.utils.yaml_io import read_lines, write_lines

logger = logging.getLogger(__name__)

DEFAULT_DB_DIR = "var/lib/fay"


def normalize_member(name: str) -> str:
    """归档成员名 → 相对根目录路径；根目录自身（"." / "./"）返回空串"""
    rel = os.path.normpath(name.lstrip("/"))
    return "" if rel == "." else rel


class PackageDatabase:
    """目标根目录的包数据库"""

    def __init__(
        self,
        root: str | Path,
        db_dir: str = DEFAULT_DB_DIR,
        *,
        detect_conflicts: bool = True,
        guard: RootGuard | None = None,
    ) -> None:
        self.guard = guard or RootGuard(root)
        self.root = self.guard.root
        self.db_path = self.guard.target(db_dir)
        self.detect_conflicts = detect_conflicts
        self._owners: dict[str, str] | None = None

    # ---- 记录读写 ----

    def _record_dir(self, name: str) -> Path:
        if not name or "/" in name or name in (".", ".."):
            raise NotInstalled(name)
        return self.guard.ensure_within(self.db_path / name)

    def is_installed(self, name: str) -> bool:
        try:
            return (self._record_dir(name) / "info").is_file()
        except NotInstalled:
            return False

    def record(self, name: str) -> InstalledPackageRecord:
        d = self._record_dir(name)
        info, files = d / "info", d / "files"
        if not info.is_file():
            raise NotInstalled(name)
        lines = read_lines(info)
        version = lines[1] if len(lines) > 1 else "unknown"
        return InstalledPackageRecord(
            name=lines[0] if lines else name,
            version=version,
            files=read_lines(files) if files.is_file() else [],
        )

    def query(self, name: str) -> tuple[str, str]:
        rec = self.record(name)
        return rec.name, rec.version

    def files(self, name: str) -> list[str]:
        return self.record(name).files

    def list(self) -> list[str]:
        if not self.db_path.is_dir():
            return []
        return sorted(
            p.name for p in self.db_path.iterdir() if (p / "info").is_file()
        )

    # ---- 文件归属索引 ----

    def _owner_index(self) -> dict[str, str]:
        if self._owners is None:
            owners: dict[str, str] = {}
            for name in self.list():
                for path in self.files(name):
                    owners.setdefault(path, name)
            self._owners = owners
        return self._owners

    def owner(self, path: str) -> str | None:
        """返回占有该路径（相对或绝对均可）的包名"""
        return self._owner_index().get(normalize_member(path))

    # ---- 幂等性检查 ----

    def satisfied(self, manifest: PackageManifest) -> bool:
        """provides 非空且全部存在于目标根目录下（与数据库记录无关）"""
        if not manifest.provides:
            return False
        return all(
            os.path.lexists(self.root / p.lstrip("/")) for p in manifest.provides
        )

    # ---- 安装 ----

    def _check_members(self, name: str, members: list[tarfile.TarInfo]) -> None:
        """解包前整体检查：路径边界 + 文件冲突"""
        conflicts: dict[str, str] = {}
        owners = self._owner_index() if self.detect_conflicts else {}
        for member in members:
            rel = normalize_member(member.name)
            if not rel:
                continue
            if rel == ".." or rel.startswith("../"):
                raise PathContainmentViolation(member.name, str(self.root))
            self.guard.target(rel)
            if member.islnk():
                self.guard.target(normalize_member(member.linkname))
            if member.isdir():
                continue
            current = owners.get(rel)
            if current and current != name:
                conflicts[rel] = current
        if conflicts:
            raise FileConflict(name, conflicts)

    def _extract(self, tar: tarfile.TarFile, member: tarfile.TarInfo, rel: str) -> None:
        target = self.guard.target(rel)
        if not member.isdir() and (target.is_symlink() or target.is_file()):
            target.unlink()
        tar.extract(
            member, path=str(self.root), set_attrs=not member.isdir(),
            numeric_owner=True, filter="fully_trusted",
        )

    def install(self, archive: str | Path) -> InstalledPackageRecord:
        """解包归档到目标根目录并记录文件清单"""
        name, version = parse_package_filename(archive)
        record_dir = self._record_dir(name)
        logger.info("安装 %s %s <- %s", name, version, archive)

        files: list[str] = []
        warnings = 0
        with open_archive(archive) as tar:
            tar.errorlevel = 2
            members = tar.getmembers()
            self._check_members(name, members)
            directories: list[tarfile.TarInfo] = []
            for member in members:
                rel = normalize_member(member.name)
                if not rel:
                    continue
                files.append(rel)
                try:
                    self._extract(tar, member, rel)
                except tarfile.ExtractError as e:
                    warnings += 1
                    logger.warning("解包警告 %s: %s", rel, e)
                except OSError as e:
                    raise ArchiveError(f"解包失败 {archive}: {rel}: {e}") from e
                if member.isdir():
                    directories.append(member)
            # 目录属性最后设置，与 extractall 一致，避免只读目录阻塞后续写入
            for member in reversed(directories):
                dirpath = str(self.guard.target(normalize_member(member.name)))
                try:
                    tar.chown(member, dirpath, numeric_owner=True)
                    tar.utime(member, dirpath)
                    tar.chmod(member, dirpath)
                except tarfile.ExtractError as e:
                    warnings += 1
                    logger.warning("目录属性设置失败 %s: %s", dirpath, e)

        write_lines(record_dir / "files", files)
        write_lines(record_dir / "info", [name, version])
        if self._owners is not None:
            self._owners = {p: o for p, o in self._owners.items() if o != name}
            for path in files:
                self._owners[path] = name

        logger.info(
            "installed %s %s (%d 个文件, %d 个警告)", name, version, len(files), warnings,
        )
        return InstalledPackageRecord(name=name, version=version, files=files)

    # ---- 卸载 ----

    def remove(self, name: str) -> None:
        """删除记录中的全部路径（尽力而为）及记录本身"""
        rec = self.record(name)
        directories: list[Path] = []
        for rel in rec.files:
            target = self.guard.target(rel)
            if target.is_dir():
                # 指向目录的符号链接（如 /lib -> usr/lib）可能由其他包或系统共用，保留
                if target.is_symlink():
                    logger.debug("保留指向目录的符号链接: %s", target)
                else:
                    directories.append(target)
                continue
            try:
                target.unlink()
            except FileNotFoundError:
                logger.debug("文件已不存在: %s", target)
            except OSError as e:
                logger.warning("删除失败 %s: %s", target, e)

        # 目录由深到浅，仅删除已为空的
        for d in sorted(directories, key=lambda p: len(p.parts), reverse=True):
            if d == self.root:
                continue
            try:
                d.rmdir()
            except OSError:
                logger.debug("目录非空，保留: %s", d)

        self.guard.rmtree(self._record_dir(name))
        if self._owners is not None:
            self._owners = {p: o for p, o in self._owners.items() if o != name}
        logger.info("removed %s", name)
