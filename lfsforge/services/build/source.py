"""源码准备

职责:
- 源码包本地优先（sources_dir 下按 URL 文件名查找），缺失时经 Fetcher 下载
- 解包到工作目录并去掉唯一的顶层目录（等价 tar --strip-components=1）
- git 源浅克隆
- 按名称顺序应用 <patches_dir>/<name>/*.patch
- 批量预下载全部源码，生成 / 校验 <sources_dir>/SHA256SUMS（sha256sum 格式）
"""

from __future__ import annotations

import copy
import fnmatch
import hashlib
import logging
import os
import urllib.error
import urllib.request
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from lfsforge.core.config import Config
from lfsforge.core.exceptions import (
    ArchiveNotFound,
    BuildFailure,
    ChecksumMismatch,
    ValidationError,
)
from lfsforge.core.models import PackageManifest
from lfsforge.core.safety import RootGuard
from lfsforge.utils.archive import open_archive, sha256_file
from lfsforge.utils.net import url_basename, validate_url_scheme
from lfsforge.utils.shell import CommandExecutor, get_executor
from lfsforge.utils.yaml_io import read_lines, write_lines

logger = logging.getLogger(__name__)

CHECKSUM_FILE = "SHA256SUMS"
_ARCHIVE_PATTERNS = ("*.tar.*", "*.tgz", "*.tar")


class Fetcher(Protocol):
    """源码下载能力：成功时 dest 存在，失败时抛异常"""

    def fetch(self, url: str, dest: Path) -> None: ...


class UrlFetcher:
    """基于 urllib 的下载器（不做重试）"""

    def fetch(self, url: str, dest: Path) -> None:
        validate_url_scheme(url, context=f"source {dest.name}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f".{dest.name}.part")
        logger.info("  下载: %s", url)
        try:
            urllib.request.urlretrieve(url, str(tmp))  # nosec B310
        except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
            tmp.unlink(missing_ok=True)
            raise ArchiveNotFound(f"下载失败: {url} - {e}") from e
        os.replace(tmp, dest)
        logger.info("  已保存: %s", dest)


def strip_top_dir(name: str) -> str:
    """去掉成员路径的第一级目录，顶层目录自身返回空串"""
    parts = [p for p in Path(name.lstrip("/")).parts if p != "."]
    return str(Path(*parts[1:])) if len(parts) > 1 else ""


def is_source_archive(name: str) -> bool:
    """sources 目录中参与 SHA256SUMS 的文件（跳过隐藏的下载临时文件）"""
    if name.startswith("."):
        return False
    return any(fnmatch.fnmatch(name, pattern) for pattern in _ARCHIVE_PATTERNS)


@dataclass
class DownloadReport:
    """批量下载结果"""

    ready: list[str] = field(default_factory=list)
    git: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed


class SourceFetcher:
    """源码准备器"""

    def __init__(
        self,
        config: Config,
        guard: RootGuard,
        fetcher: Fetcher | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.config = config
        self.guard = guard
        self.fetcher = fetcher or UrlFetcher()
        self._executor = executor

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    def archive_path(self, manifest: PackageManifest) -> Path:
        return self.config.sources_path / url_basename(manifest.source_url)

    def locate(self, manifest: PackageManifest) -> Path:
        """返回本地源码包路径，不存在则下载"""
        path = self.archive_path(manifest)
        if path.is_file():
            logger.info("源码包已存在，直接使用: %s", path.name)
            return path
        self.fetcher.fetch(manifest.source_url, self.guard.ensure_within(path))
        if not path.is_file():
            raise ArchiveNotFound(f"源码包不存在: {path}")
        return path

    def source_digest(self, manifest: PackageManifest) -> str:
        """源码摘要：源码包内容的 SHA-256；git 源无固定内容，取地址的摘要"""
        if manifest.use_git:
            return hashlib.sha256(manifest.git_url.encode()).hexdigest()
        return sha256_file(self.locate(manifest))

    # ---- 批量预下载与校验 ----

    def download(self, manifests: Iterable[PackageManifest]) -> DownloadReport:
        """逐个确保源码包就位；单个失败只记录，不中断其余下载

        git 源在构建时浅克隆，这里只登记。
        """
        report = DownloadReport()
        for m in manifests:
            if m.use_git:
                logger.info("git 源，构建时克隆: %s", m.name)
                report.git.append(m.name)
                continue
            try:
                self.locate(m)
            except (ArchiveNotFound, ValidationError) as e:
                logger.error("源码下载失败 %s: %s", m.name, e)
                report.failed[m.name] = str(e)
            else:
                report.ready.append(m.name)
        logger.info(
            "源码下载完成: %d 个就绪, %d 个 git 源, %d 个失败",
            len(report.ready), len(report.git), len(report.failed),
        )
        return report

    @property
    def checksum_file(self) -> Path:
        return self.guard.ensure_within(self.config.sources_path / CHECKSUM_FILE)

    def source_archives(self) -> list[Path]:
        sources = self.config.sources_path
        if not sources.is_dir():
            return []
        return sorted(
            p for p in sources.iterdir() if p.is_file() and is_source_archive(p.name)
        )

    def write_checksums(self) -> Path:
        """为 sources 目录下全部源码包生成 SHA256SUMS，返回其路径"""
        path = self.checksum_file
        archives = self.source_archives()
        write_lines(path, [f"{sha256_file(p)}  {p.name}" for p in archives])
        logger.info("校验和已写入 %s (%d 个源码包)", path, len(archives))
        return path

    def verify_checksums(self) -> int:
        """按 SHA256SUMS 校验已存在的源码包，返回校验通过的个数

        记录中缺失的文件跳过（同 sha256sum --ignore-missing）；
        没有 SHA256SUMS 时返回 0。

        Raises:
            ChecksumMismatch: 至少一个源码包内容与记录不符
        """
        path = self.checksum_file
        if not path.is_file():
            logger.warning("未找到 %s，跳过校验", path)
            return 0
        verified = 0
        mismatched: list[str] = []
        for line in read_lines(path):
            fields = line.split(None, 1)
            if len(fields) != 2:
                logger.warning("忽略无法解析的校验行: %s", line)
                continue
            expected, name = fields[0].lower(), fields[1].lstrip("*")
            archive = self.guard.ensure_within(self.config.sources_path / name)
            if not archive.is_file():
                logger.debug("校验跳过缺失文件: %s", name)
                continue
            if sha256_file(archive) != expected:
                logger.error("校验失败: %s", name)
                mismatched.append(name)
            else:
                verified += 1
        if mismatched:
            raise ChecksumMismatch(mismatched)
        logger.info("校验通过: %d 个源码包", verified)
        return verified

    def extract(self, archive: Path, dest: Path) -> int:
        """解包并去掉顶层目录，返回写出的条目数"""
        dest = self.guard.ensure_within(dest)
        dest.mkdir(parents=True, exist_ok=True)
        count = 0
        with open_archive(archive) as tar:
            for member in tar.getmembers():
                rel = strip_top_dir(member.name)
                if not rel:
                    if not member.isdir():
                        logger.warning("跳过顶层目录之外的条目: %s (%s)", member.name, archive.name)
                    continue
                self.guard.ensure_within(dest / rel)
                stripped = copy.copy(member)
                stripped.name = rel
                # 硬链接目标是归档内路径，需同样去掉顶层；符号链接目标保持原样
                if member.islnk():
                    stripped.linkname = strip_top_dir(member.linkname)
                tar.extract(stripped, path=str(dest), filter="tar")
                count += 1
        logger.info("已解包 %s -> %s (%d 个条目)", archive.name, dest, count)
        return count

    def clone(self, manifest: PackageManifest, dest: Path) -> None:
        argv = ["git", "clone", "--depth=1", manifest.git_url, str(dest)]
        logger.info("克隆 %s -> %s", manifest.git_url, dest)
        r = self.executor.execute(argv, cwd=str(dest.parent))
        if not r.success:
            raise BuildFailure(manifest.name, " ".join(argv), r.exit_info)

    def patches(self, manifest: PackageManifest) -> list[Path]:
        patch_dir = self.config.patches_path / manifest.name
        if not patch_dir.is_dir():
            return []
        return sorted(patch_dir.glob("*.patch"))

    def apply_patches(self, manifest: PackageManifest, src: Path) -> int:
        applied = 0
        for patch in self.patches(manifest):
            argv = ["patch", "-p1", "-i", str(patch.resolve())]
            logger.info("  应用补丁: %s", patch.name)
            r = self.executor.execute(argv, cwd=str(src))
            if not r.success:
                raise BuildFailure(manifest.name, " ".join(argv), r.exit_info)
            applied += 1
        return applied

    def prepare(self, manifest: PackageManifest, src: Path) -> Path:
        """把源码放到 src（调用方保证 src 尚不存在），返回 src"""
        src = self.guard.ensure_within(src)
        if manifest.use_git:
            src.parent.mkdir(parents=True, exist_ok=True)
            self.clone(manifest, src)
        else:
            self.extract(self.locate(manifest), src)
        self.apply_patches(manifest, src)
        return src
