"""构建产物缓存

职责:
- 安装树 → 压缩归档（原子写入）
- 命中检查 / 读取
- 失效与清空（显式外部操作，无自动过期）

缓存策略:
  - 默认以 (name, version) 为键：<cache>/<name>-<version>.pkg.tar.<ext>
  - 内容寻址模式额外带输入摘要：<cache>/<digest>/<name>-<version>.pkg.tar.<ext>
  - 同键 put 直接覆盖旧条目
"""

from __future__ import annotations

import logging
from pathlib import Path

from lfsforge.core.models import BuildArtifact
from lfsforge.core.safety import RootGuard
from lfsforge.utils.archive import (
    COMPRESSIONS,
    create_archive,
    package_filename,
    parse_package_filename,
)

logger = logging.getLogger(__name__)


class ArtifactCache:
    """构建产物缓存"""

    def __init__(self, cache_dir: str | Path, guard: RootGuard, compression: str = "xz") -> None:
        self.cache_dir = Path(cache_dir)
        self.guard = guard
        self.compression = compression

    def path_for(self, name: str, version: str, digest: str = "") -> Path:
        base = self.cache_dir / digest if digest else self.cache_dir
        return base / package_filename(name, version, self.compression)

    def _find(self, name: str, version: str, digest: str) -> Path | None:
        """优先当前压缩格式，其次任意已知格式"""
        preferred = self.path_for(name, version, digest)
        if preferred.is_file():
            return preferred
        base = preferred.parent
        for comp in COMPRESSIONS:
            candidate = base / package_filename(name, version, comp)
            if candidate.is_file():
                return candidate
        return None

    @staticmethod
    def _artifact(path: Path, digest: str = "") -> BuildArtifact:
        name, version = parse_package_filename(path)
        return BuildArtifact(
            name=name, version=version, path=str(path),
            digest=digest, created_at=path.stat().st_mtime,
        )

    def has(self, name: str, version: str, digest: str = "") -> bool:
        return self._find(name, version, digest) is not None

    def get(self, name: str, version: str, digest: str = "") -> BuildArtifact | None:
        path = self._find(name, version, digest)
        if path is None:
            return None
        logger.info("产物缓存命中: %s-%s", name, version)
        return self._artifact(path, digest)

    def put(self, name: str, version: str, tree_root: str | Path, digest: str = "") -> BuildArtifact:
        """将安装树压缩入缓存，同键旧条目被覆盖"""
        dest = self.guard.ensure_within(self.path_for(name, version, digest))
        create_archive(tree_root, dest, self.compression)
        # 同键其他压缩格式的旧条目会遮蔽判断，一并清除
        for comp in COMPRESSIONS:
            stale = dest.parent / package_filename(name, version, comp)
            if comp != self.compression and stale.is_file():
                stale.unlink()
        logger.info("产物已缓存: %s-%s -> %s", name, version, dest)
        return self._artifact(dest, digest)

    def list(self) -> list[BuildArtifact]:
        """列出全部缓存条目（含内容寻址子目录）"""
        if not self.cache_dir.is_dir():
            return []
        artifacts: list[BuildArtifact] = []
        for path in sorted(self.cache_dir.glob("*.pkg.tar.*")):
            if not path.name.startswith("."):
                artifacts.append(self._artifact(path))
        for path in sorted(self.cache_dir.glob("*/*.pkg.tar.*")):
            if not path.name.startswith("."):
                artifacts.append(self._artifact(path, digest=path.parent.name))
        return artifacts

    def invalidate(self, name: str, version: str = "") -> int:
        """删除指定包（可限定版本）的全部缓存条目，返回删除数量"""
        removed = 0
        for artifact in self.list():
            if artifact.name != name or (version and artifact.version != version):
                continue
            path = self.guard.ensure_within(artifact.path)
            path.unlink(missing_ok=True)
            removed += 1
            if artifact.digest and not any(path.parent.iterdir()):
                path.parent.rmdir()
        if removed:
            logger.info("缓存已失效: %s%s (%d 个条目)", name, f"-{version}" if version else "", removed)
        return removed

    def clear(self) -> int:
        """清空缓存目录下全部产物，返回删除数量"""
        artifacts = self.list()
        for artifact in artifacts:
            self.guard.ensure_within(artifact.path).unlink(missing_ok=True)
        for artifact in artifacts:
            sub = Path(artifact.path).parent
            if artifact.digest and sub.is_dir() and not any(sub.iterdir()):
                sub.rmdir()
        logger.info("缓存已清空: %s (%d 个条目)", self.cache_dir, len(artifacts))
        return len(artifacts)
