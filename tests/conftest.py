"""测试共享 fixture — 目标根目录 + 清单 + 源码包 + mock 执行器

整体结构:

  tmp_path/
  ├── lfs/                  目标根目录（Config.target_root）
  │   ├── sources/          源码包（make_source 生成）
  │   ├── build/ pkg/ ...   构建 / 缓存 / 数据库都落在根目录内
  └── packages.toml         清单（write_manifest 生成）

使用流程:
  1. config fixture 给出指向 tmp_path 的 Config，同时设为全局配置
  2. write_manifest 写入 [packages.<name>] 段
  3. make_source 为包生成带顶层目录的源码包，构建时无需联网
  4. FakeExecutor 记录 argv 并返回预设结果，用于 chroot 等无法真实执行的场景
"""

from __future__ import annotations

import json
import os
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

import lfsforge.core.config as cfgmod
from lfsforge.core.config import Config
from lfsforge.services.container import reset_container
from lfsforge.utils.shell import CommandResult


class FakeExecutor:
    """记录调用并按序返回预设结果的执行器"""

    def __init__(self, results: list[CommandResult] | None = None) -> None:
        self.calls: list[dict] = []
        self._results = list(results or [])

    def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
        self.calls.append({"cmd": cmd, "cwd": cwd, "env": env})
        if self._results:
            return self._results.pop(0)
        return CommandResult(returncode=0, stdout="", stderr="")


@pytest.fixture
def lfs_root(tmp_path: Path) -> Path:
    root = tmp_path / "lfs"
    root.mkdir()
    return Path(os.path.realpath(root))


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    return tmp_path / "packages.toml"


@pytest.fixture
def config(lfs_root: Path, manifest_path: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    """独立的全局配置；chroot_stage 调高，默认全部在宿主机构建"""
    monkeypatch.delenv("LFS", raising=False)
    cfg = Config(
        target_root=str(lfs_root),
        manifest=str(manifest_path),
        nproc=2,
        chroot_stage=99,
    )
    monkeypatch.setattr(cfgmod, "_current", cfg)
    reset_container()
    yield cfg
    reset_container()


@pytest.fixture
def write_manifest(manifest_path: Path) -> Callable[[str], Path]:
    def _write(text: str) -> Path:
        manifest_path.write_text(text, encoding="utf-8")
        return manifest_path
    return _write


def make_tarball(dest: Path, files: dict[str, str], top: str = "") -> Path:
    """生成 tar 归档，files 为 成员路径 → 文本内容"""
    staging = dest.parent / f".staging-{dest.name}"
    base = staging / top if top else staging
    for rel, content in files.items():
        p = base / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    mode = "w:gz" if dest.name.endswith(".gz") else "w:xz" if dest.name.endswith(".xz") else "w"
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, mode) as tar:
        for entry in sorted(staging.rglob("*")):
            tar.add(str(entry), arcname=str(entry.relative_to(staging)), recursive=False)
    return dest


@pytest.fixture
def make_source(config: Config) -> Callable[..., Path]:
    """在 sources 目录下生成 <name>-<version>.tar.gz，内容带顶层目录"""
    def _make(name: str, version: str, files: dict[str, str] | None = None) -> Path:
        dest = config.sources_path / f"{name}-{version}.tar.gz"
        return make_tarball(
            dest, files or {"README": f"{name} {version}\n"}, top=f"{name}-{version}",
        )
    return _make


def package_section(
    name: str, version: str = "1.0", *, stage: int = 1, commands: list[str] | None = None,
    **fields: object,
) -> str:
    """生成单个 [packages.<name>] 段（custom 构建系统，源码为 make_source 生成的包）"""
    cmds = commands if commands is not None else [
        "mkdir -p ${PKG}/usr/share/" + name,
        "cp README ${PKG}/usr/share/" + name + "/README",
    ]
    lines = [
        f"[packages.{name}]",
        f'version = "{version}"',
        f"stage = {stage}",
        f'url = "https://example.invalid/{name}-${{version}}.tar.gz"',
        'build_system = "custom"',
        "build_commands = [" + ", ".join(json.dumps(c) for c in cmds) + "]",
    ]
    for key, value in fields.items():
        if isinstance(value, bool):
            lines.append(f"{key} = {'true' if value else 'false'}")
        elif isinstance(value, int):
            lines.append(f"{key} = {value}")
        elif isinstance(value, list):
            lines.append(f"{key} = [" + ", ".join(f'"{v}"' for v in value) + "]")
        else:
            lines.append(f'{key} = "{value}"')
    return "\n".join(lines) + "\n\n"


@pytest.fixture
def section() -> Callable[..., str]:
    return package_section


@pytest.fixture
def tarball() -> Callable[..., Path]:
    return make_tarball


@pytest.fixture
def fake_executor() -> Callable[..., FakeExecutor]:
    return FakeExecutor
