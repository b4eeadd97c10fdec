"""目标根目录安全边界

构建、安装、包数据库在删除或写入前，都要确认路径解析后仍落在目标根目录内。
未存在的路径按"已存在的最深父目录 realpath + 剩余部分"解析，
因此经由符号链接逃逸到宿主机的路径同样会被拦截。

违规一律抛出 PathContainmentViolation，调用链上不做捕获。
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from lfsforge.core.exceptions import ConfigError, PathContainmentViolation

logger = logging.getLogger(__name__)

# 绝不允许作为目标根目录的宿主机路径
FORBIDDEN_ROOTS = frozenset({
    "/", "/bin", "/boot", "/dev", "/etc", "/home", "/lib", "/lib64", "/opt",
    "/proc", "/root", "/run", "/sbin", "/srv", "/sys", "/tmp", "/usr", "/var",
})

_USUAL_PREFIXES = ("/mnt/", "/media/", "/build/", "/opt/lfs", "/var/tmp/")


def validate_root(root: str | Path) -> Path:
    """校验目标根目录本身：必须为绝对路径，且不能是宿主机系统目录"""
    raw = str(root)
    if not raw:
        raise ConfigError("target_root 未设置")
    if not os.path.isabs(raw):
        raise ConfigError(f"target_root 必须为绝对路径: {raw}")
    normalized = os.path.normpath(raw)
    if normalized in FORBIDDEN_ROOTS:
        raise ConfigError(f"target_root='{raw}' 会影响宿主系统，拒绝使用")
    if not normalized.startswith(_USUAL_PREFIXES):
        logger.warning("target_root='%s' 位于非常规位置，请谨慎操作", raw)
    return Path(normalized)


class RootGuard:
    """目标根目录路径守卫"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(os.path.realpath(validate_root(root)))

    def resolve(self, path: str | Path) -> Path:
        """解析路径（含尚不存在的路径），不跟随最后一级符号链接"""
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        if p.name in ("", "..") or Path(os.path.realpath(p)) == self.root:
            return Path(os.path.realpath(p))
        return Path(os.path.realpath(p.parent)) / p.name

    def contains(self, path: str | Path) -> bool:
        resolved = self.resolve(path)
        return resolved == self.root or self.root in resolved.parents

    def ensure_within(self, path: str | Path) -> Path:
        """路径不在根目录内时抛出 PathContainmentViolation"""
        if not self.contains(path):
            raise PathContainmentViolation(str(path), str(self.root))
        return self.resolve(path)

    def target(self, relative: str) -> Path:
        """根目录内相对路径（可带前导 / 或 ./）转为宿主机绝对路径，并做边界检查"""
        rel = relative.lstrip("/")
        if rel.startswith("./"):
            rel = rel[2:]
        return self.ensure_within(self.root / rel)

    def guest(self, path: str | Path) -> str:
        """宿主机路径转为 chroot 内看到的路径"""
        resolved = self.ensure_within(path)
        rel = resolved.relative_to(self.root)
        return "/" + str(rel) if str(rel) != "." else "/"

    def validate_paths(self, **paths: str | Path) -> None:
        """启动时检查关键目录全部位于根目录内"""
        for label, value in paths.items():
            if not self.contains(value):
                raise PathContainmentViolation(f"{label}={value}", str(self.root))

    def rmtree(self, path: str | Path) -> None:
        """带边界检查的 rm -rf，不允许删除根目录自身"""
        resolved = self.ensure_within(path)
        if resolved == self.root:
            raise PathContainmentViolation(f"{path} (根目录自身)", str(self.root))
        if resolved.is_symlink() or resolved.is_file():
            resolved.unlink()
        elif resolved.exists():
            shutil.rmtree(resolved)
