"""构建执行环境

两种环境:
- host:   宿主机 bash，PATH 前置交叉工具链目录，导出 LFS / LFS_TGT
- chroot: chroot <root> /usr/bin/env -i 最小环境，路径换算为根目录内视角

编译选项档位 perf / safe / bootstrap 通过 CFLAGS / CXXFLAGS / LDFLAGS 导出。
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from lfsforge.core.config import Config
from lfsforge.core.models import ExecutionEnvironment, PackageManifest
from lfsforge.core.safety import RootGuard

# 工具链阶段一律使用保守档位
BOOTSTRAP_STAGE = 1

# perf 档位下按包降级
PACKAGE_PROFILE_OVERRIDES = {
    "gcc": "bootstrap",
    "binutils": "bootstrap",
    "glibc": "bootstrap",
    "openssl": "safe",
    "python": "safe",
}


def flag_profile(manifest: PackageManifest) -> str:
    if manifest.stage <= BOOTSTRAP_STAGE:
        return "bootstrap"
    if manifest.safe_flags:
        return "safe"
    return PACKAGE_PROFILE_OVERRIDES.get(manifest.name, "perf")


def compiler_flags(profile: str, jobs: int) -> dict[str, str]:
    base = "-O3 -march=native -mtune=native -pipe -fomit-frame-pointer"
    lto = f"-flto={jobs} -fuse-linker-plugin"
    if profile == "perf":
        cflags = (
            f"{base} {lto} -ffast-math -fno-math-errno -funroll-loops"
            " -fprefetch-loop-arrays -ftree-vectorize -fvect-cost-model=dynamic"
        )
        ldflags = f"-Wl,-O2 -Wl,--as-needed -Wl,--sort-common {lto}"
    elif profile == "safe":
        cflags = f"{base} {lto} -funroll-loops -fprefetch-loop-arrays -ftree-vectorize"
        ldflags = f"-Wl,-O2 -Wl,--as-needed -flto={jobs}"
    elif profile == "bootstrap":
        cflags = "-O2 -march=native -mtune=native -pipe"
        ldflags = "-Wl,-O2 -Wl,--as-needed"
    else:
        raise ValueError(f"未知编译选项档位: {profile}")
    return {"CFLAGS": cflags, "CXXFLAGS": cflags, "LDFLAGS": ldflags}


@dataclass
class PreparedCommand:
    """已包装好的子进程调用"""

    argv: list[str]
    cwd: str
    env: dict[str, str] | None


class BuildEnvironment:
    """执行环境基类：负责占位符变量表与命令包装"""

    kind: ExecutionEnvironment

    def __init__(self, config: Config, guard: RootGuard, manifest: PackageManifest) -> None:
        self.config = config
        self.guard = guard
        self.manifest = manifest
        self.flags = compiler_flags(flag_profile(manifest), config.jobs)

    def path(self, host_path: Path) -> str:
        return str(host_path)

    def variables(self, src: Path, pkg: Path) -> dict[str, str]:
        """渲染命令模板的完整变量表"""
        m = self.manifest
        return {
            "NPROC": str(self.config.jobs),
            "version": m.version,
            "name": m.name,
            "PKG": self.path(pkg),
            "DESTDIR": self.path(pkg),
            "PREFIX": self.config.prefix,
            "TARGET": self.config.target_triple,
            "SYSROOT": self.path(self.guard.root),
            "TOOLS": self.path(self.config.toolchain_path),
            "SOURCES": self.path(self.config.sources_path),
            "SRC": self.path(src),
        }

    def wrap(self, command: str, src: Path) -> PreparedCommand:
        raise NotImplementedError


class HostEnvironment(BuildEnvironment):
    """宿主机交叉编译环境"""

    kind = ExecutionEnvironment.HOST

    def wrap(self, command: str, src: Path) -> PreparedCommand:
        env = dict(os.environ)
        env.update(self.flags)
        env.update({
            "PATH": f"{self.config.toolchain_path}:{env.get('PATH', '/usr/bin:/bin')}",
            "LFS": str(self.guard.root),
            "LFS_TGT": self.config.target_triple,
            "LC_ALL": "POSIX",
            "MAKEFLAGS": f"-j{self.config.jobs}",
        })
        return PreparedCommand(argv=["bash", "-e", "-c", command], cwd=str(src), env=env)


class ChrootEnvironment(BuildEnvironment):
    """目标根目录内 chroot 环境"""

    kind = ExecutionEnvironment.CHROOT

    def path(self, host_path: Path) -> str:
        return self.guard.guest(host_path)

    def wrap(self, command: str, src: Path) -> PreparedCommand:
        env_vars = [
            "HOME=/root",
            f"PATH={self.config.chroot_path}",
            f"MAKEFLAGS=-j{self.config.jobs}",
        ] + [f"{k}={v}" for k, v in self.flags.items()]
        argv = [
            "chroot", str(self.guard.root), "/usr/bin/env", "-i", *env_vars,
            "/bin/bash", "-e", "-c", f"cd {shlex.quote(self.path(src))} && {command}",
        ]
        return PreparedCommand(argv=argv, cwd=str(self.guard.root), env=None)


def environment_for(
    manifest: PackageManifest, config: Config, guard: RootGuard,
) -> BuildEnvironment:
    """清单显式声明优先，否则按 chroot_stage 阈值选择"""
    if manifest.environment(config.chroot_stage) is ExecutionEnvironment.CHROOT:
        return ChrootEnvironment(config, guard, manifest)
    return HostEnvironment(config, guard, manifest)
