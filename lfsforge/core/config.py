"""集中配置管理

替代原构建脚本里散落的 LFS / LFS_SOURCES / PK_ROOT 等环境变量，
提供统一的配置入口。支持从 YAML 文件加载 + 环境变量覆盖 + 编程式覆盖。

目录类字段若为相对路径，一律相对 target_root 解析；
patches_dir 相对清单文件所在目录解析。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from lfsforge.core.exceptions import ConfigError
from lfsforge.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/default.yml"


@dataclass
class Config:
    """框架全局配置"""

    # 目标根目录（即原脚本中的 $LFS）
    target_root: str = "/mnt/lfs"

    # 清单
    manifest: str = "packages.toml"
    patches_dir: str = "patches"

    # 目录（相对 target_root）
    sources_dir: str = "sources"
    build_dir: str = "build"
    cache_dir: str = "pkg"
    db_dir: str = "var/lib/fay"
    state_file: str = ".build-state.yml"
    log_dir: str = "var/log/lfsforge"

    # 交叉编译
    target_triple: str = "x86_64-lfs-linux-gnu"
    toolchain_bin: str = "var/tmp/lfs-bootstrap/bin"
    prefix: str = "/usr"

    # 执行环境
    chroot_path: str = "/usr/bin:/usr/sbin"
    chroot_stage: int = 3
    nproc: int = 0

    # 产物与数据库
    compression: str = "xz"
    cache_key: str = "name_version"     # name_version | content
    detect_conflicts: bool = True
    run_checks: bool = False

    stage_names: dict[int, str] = field(default_factory=lambda: {
        1: "toolchain", 2: "temptools", 3: "base",
        4: "config", 5: "kernel", 6: "bootloader", 7: "desktop",
    })

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认；LFS 环境变量覆盖 target_root"""
        data = load_yaml(path)
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件无效 {path}: {e}") from e
        cfg.extra = extra
        env_root = os.environ.get("LFS", "")
        if env_root:
            cfg.target_root = env_root
        cfg.validate()
        return cfg

    def validate(self) -> None:
        """字段取值校验"""
        if self.compression not in ("xz", "gz", "bz2", "zst"):
            raise ConfigError(f"不支持的压缩格式: {self.compression}")
        if self.cache_key not in ("name_version", "content"):
            raise ConfigError(f"不支持的缓存键模式: {self.cache_key}")
        if not isinstance(self.chroot_stage, int) or isinstance(self.chroot_stage, bool):
            raise ConfigError(f"chroot_stage 必须为整数: {self.chroot_stage!r}")

    # ---- 路径解析 ----

    @property
    def root(self) -> Path:
        return Path(self.target_root)

    def under_root(self, value: str) -> Path:
        """相对路径挂到 target_root 下，绝对路径原样返回"""
        p = Path(value)
        return p if p.is_absolute() else self.root / p

    @property
    def sources_path(self) -> Path:
        return self.under_root(self.sources_dir)

    @property
    def build_path(self) -> Path:
        return self.under_root(self.build_dir)

    @property
    def cache_path(self) -> Path:
        return self.under_root(self.cache_dir)

    @property
    def state_path(self) -> Path:
        return self.under_root(self.state_file)

    @property
    def log_path(self) -> Path:
        return self.under_root(self.log_dir)

    @property
    def toolchain_path(self) -> Path:
        return self.under_root(self.toolchain_bin)

    @property
    def patches_path(self) -> Path:
        p = Path(self.patches_dir)
        return p if p.is_absolute() else Path(self.manifest).parent / p

    @property
    def jobs(self) -> int:
        return self.nproc if self.nproc > 0 else (os.cpu_count() or 1)

    def stage_label(self, stage: int) -> str:
        name = self.stage_names.get(stage, "")
        return f"{stage}:{name}" if name else str(stage)

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_PATH, **overrides: object) -> Config:
    """从文件初始化全局配置，overrides 中非空值覆盖文件内容"""
    global _current  # noqa: PLW0603
    cfg = Config.from_file(path)
    for key, value in overrides.items():
        if value not in (None, ""):
            setattr(cfg, key, value)
    cfg.validate()
    _current = cfg
    logger.info("配置已加载: %s (root=%s)", path, cfg.target_root)
    return _current


def set_config(cfg: Config) -> None:
    """替换全局配置（测试用）"""
    global _current  # noqa: PLW0603
    _current = cfg
