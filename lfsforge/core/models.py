"""核心数据模型

清单、产物、安装记录、包状态集中定义，各服务统一从此处导入。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lfsforge.core.manifest.template import CommandTemplate

# build_order 缺省时的排序哨兵，大于任何真实取值
ORDER_SENTINEL = float("inf")

DEFAULT_STAGE = 3


class BuildSystem(str, Enum):
    """构建系统，决定默认构建配方"""

    AUTOTOOLS = "autotools"
    MESON = "meson"
    CMAKE = "cmake"
    MAKE = "make"
    CUSTOM = "custom"


class ExecutionEnvironment(str, Enum):
    """构建命令的执行环境"""

    HOST = "host"        # 宿主机 + 交叉工具链 PATH
    CHROOT = "chroot"    # 在目标根目录内 chroot 执行


class PackageState(str, Enum):
    """单个包在一次编排中的状态"""

    PENDING = "pending"
    SATISFIED = "satisfied"
    BUILDING = "building"
    BUILT = "built"
    INSTALLING = "installing"
    INSTALLED = "installed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PackageState.SATISFIED, PackageState.INSTALLED, PackageState.FAILED)

    @property
    def success(self) -> bool:
        return self in (PackageState.SATISFIED, PackageState.INSTALLED)


# =========================================================================
# 包清单
# =========================================================================


@dataclass
class PackageManifest:
    """单个包的声明式定义

    url 为模板，可引用 ${version} / ${name}；
    use_git=True 时以 git_url 为唯一源，否则以 url 为唯一源。
    """

    name: str
    version: str
    stage: int = DEFAULT_STAGE
    build_system: BuildSystem = BuildSystem.AUTOTOOLS
    build_commands: list[CommandTemplate] = field(default_factory=list)
    check_commands: list[CommandTemplate] = field(default_factory=list)
    provides: list[str] = field(default_factory=list)
    depends: list[str] = field(default_factory=list)
    build_order: int | None = None
    url: str = ""
    use_git: bool = False
    git_url: str = ""
    safe_flags: bool = False
    execution_environment: ExecutionEnvironment | None = None
    description: str = ""

    @property
    def sort_key(self) -> float:
        return ORDER_SENTINEL if self.build_order is None else self.build_order

    @property
    def source_url(self) -> str:
        """展开版本占位符后的源码地址"""
        return (
            self.url.replace("${version}", self.version).replace("${name}", self.name)
        )

    @property
    def source_locator(self) -> str:
        return self.git_url if self.use_git else self.source_url

    def environment(self, chroot_stage: int = DEFAULT_STAGE) -> ExecutionEnvironment:
        """显式声明优先，否则按阶段阈值决定"""
        if self.execution_environment is not None:
            return self.execution_environment
        if self.stage >= chroot_stage:
            return ExecutionEnvironment.CHROOT
        return ExecutionEnvironment.HOST

    def fingerprint(self) -> dict[str, object]:
        """参与内容寻址缓存键的字段"""
        return {
            "name": self.name,
            "version": self.version,
            "stage": self.stage,
            "build_system": self.build_system.value,
            "build_commands": [t.source for t in self.build_commands],
            "source": self.source_locator,
            "safe_flags": self.safe_flags,
        }


# =========================================================================
# 构建产物 / 安装记录
# =========================================================================


@dataclass(frozen=True)
class BuildArtifact:
    """已构建、压缩的安装树快照，只读"""

    name: str
    version: str
    path: str
    digest: str = ""
    created_at: float = 0.0


@dataclass
class InstalledPackageRecord:
    """目标根目录中的一条安装记录，files 为相对根目录的路径，按解包顺序"""

    name: str
    version: str
    files: list[str] = field(default_factory=list)
