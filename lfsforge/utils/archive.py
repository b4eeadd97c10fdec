"""归档编解码

- 包文件名解析：<name>-<version>(.pkg)?.tar.<ext>
- 打开 / 创建 tar 归档，支持 xz / gz / bz2 / zst（zst 经由 zstandard）
- 文件摘要
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

import zstandard

from lfsforge.core.exceptions import ArchiveError, ArchiveNotFound

logger = logging.getLogger(__name__)

COMPRESSIONS = ("xz", "gz", "bz2", "zst")

# 按长度从长到短匹配，保证 .pkg.tar.xz 先于 .tar.xz
KNOWN_SUFFIXES = tuple(sorted(
    [f".pkg.tar.{c}" for c in COMPRESSIONS]
    + [f".tar.{c}" for c in COMPRESSIONS]
    + [".pkg.tar", ".tar", ".tgz", ".txz", ".tbz2", ".tzst"],
    key=len, reverse=True,
))

_VERSION_SPLIT = re.compile(r"-(?=\d)")

_SHORT_SUFFIX = {".tgz": "gz", ".txz": "xz", ".tbz2": "bz2", ".tzst": "zst"}


def strip_archive_suffix(filename: str) -> str:
    for suffix in KNOWN_SUFFIXES:
        if filename.endswith(suffix):
            return filename[: -len(suffix)]
    return filename


def parse_package_filename(path: str | Path) -> tuple[str, str]:
    """从归档文件名推导 (name, version)

    规则: 取 basename，去掉已知归档后缀，在第一个"后跟数字的 -"处切分；
    不存在这样的 - 时 version 为 "unknown"。

        >>> parse_package_filename("gcc-16.0.1.pkg.tar.xz")
        ('gcc', '16.0.1')
        >>> parse_package_filename("toolkit.tar.gz")
        ('toolkit', 'unknown')
    """
    stem = strip_archive_suffix(Path(path).name)
    parts = _VERSION_SPLIT.split(stem, maxsplit=1)
    if len(parts) == 2 and parts[0]:
        return parts[0], parts[1]
    return stem, "unknown"


def package_filename(name: str, version: str, compression: str = "xz") -> str:
    return f"{name}-{version}.pkg.tar.{compression}"


def compression_of(path: str | Path) -> str:
    """按后缀判断压缩格式，未压缩返回空串"""
    name = Path(path).name
    for short, comp in _SHORT_SUFFIX.items():
        if name.endswith(short):
            return comp
    for comp in COMPRESSIONS:
        if name.endswith(f".tar.{comp}"):
            return comp
    return ""


@contextmanager
def open_archive(path: str | Path) -> Iterator[tarfile.TarFile]:
    """以只读方式打开归档；zst 先解压到匿名临时文件再交给 tarfile"""
    p = Path(path)
    if not p.is_file():
        raise ArchiveNotFound(f"归档不存在: {p}")
    try:
        if compression_of(p) == "zst":
            with open(p, "rb") as src, tempfile.TemporaryFile() as raw:
                zstandard.ZstdDecompressor().copy_stream(src, raw)
                raw.seek(0)
                with tarfile.open(fileobj=raw, mode="r:") as tar:
                    yield tar
        else:
            with tarfile.open(p, mode="r:*") as tar:
                yield tar
    except (tarfile.ReadError, tarfile.CompressionError, zstandard.ZstdError, EOFError) as e:
        raise ArchiveError(f"归档损坏或格式不支持 {p}: {e}") from e


def _tree_entries(tree: Path) -> list[Path]:
    """按确定顺序（深度优先、名称排序）列出目录树下全部条目"""
    entries: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(tree):
        dirnames.sort()
        base = Path(dirpath)
        for d in dirnames:
            entries.append(base / d)
        for f in sorted(filenames):
            entries.append(base / f)
    return entries


def _write_tar(tree: Path, fileobj: IO[bytes], mode: str) -> int:
    count = 0
    with tarfile.open(fileobj=fileobj, mode=mode) as tar:
        for entry in _tree_entries(tree):
            tar.add(str(entry), arcname=str(entry.relative_to(tree)), recursive=False)
            count += 1
    return count


def create_archive(tree: str | Path, dest: str | Path, compression: str = "xz") -> Path:
    """将目录树打包为 dest（原子写入），成员名为相对 tree 的路径"""
    if compression not in COMPRESSIONS:
        raise ArchiveError(f"不支持的压缩格式: {compression}")
    tree, dest = Path(tree), Path(dest)
    if not tree.is_dir():
        raise ArchiveError(f"待打包目录不存在: {tree}")
    dest.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp = tempfile.mkstemp(dir=str(dest.parent), prefix=f".{dest.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as out:
            if compression == "zst":
                with tempfile.TemporaryFile() as raw:
                    count = _write_tar(tree, raw, "w:")
                    raw.seek(0)
                    zstandard.ZstdCompressor(level=3).copy_stream(raw, out)
            else:
                count = _write_tar(tree, out, f"w:{compression}")
        os.replace(tmp, dest)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.info("归档已生成: %s (%d 个条目)", dest, count)
    return dest


def sha256_file(path: str | Path) -> str:
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256.update(chunk)
    return sha256.hexdigest()
