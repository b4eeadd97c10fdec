"""清单存储

从 packages.toml（[packages.<name>] 段）或等价 YAML（packages: 映射）
加载全部包定义。单个条目解析失败只跳过该条目并记录诊断，
文件级错误与悬空依赖视为配置错误。
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

import yaml

from lfsforge.core.exceptions import ConfigError, ManifestError, PackageNotFoundError
from lfsforge.core.manifest.parser import parse_section
from lfsforge.core.models import PackageManifest
from lfsforge.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


class ManifestStore:
    """包清单存储，按声明顺序保存解析成功的条目"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._manifests: dict[str, PackageManifest] | None = None
        self.errors: list[ManifestError] = []

    def _read_sections(self) -> dict[str, Any]:
        if not self.path.exists():
            raise ConfigError(f"清单文件不存在: {self.path}")
        try:
            if self.path.suffix == ".toml":
                with open(self.path, "rb") as f:
                    data = tomllib.load(f)
            else:
                data = load_yaml(self.path)
        except (tomllib.TOMLDecodeError, yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"清单文件格式错误 {self.path}: {e}") from e

        sections = data.get("packages", {})
        if not isinstance(sections, dict):
            raise ConfigError(f"清单文件 {self.path} 中 packages 必须为表/字典")
        return sections

    def load_all(self) -> list[PackageManifest]:
        """加载全部条目，返回声明顺序的清单列表"""
        if self._manifests is not None:
            return list(self._manifests.values())

        sections = self._read_sections()
        manifests: dict[str, PackageManifest] = {}
        errors: list[ManifestError] = []
        for name, data in sections.items():
            try:
                manifests[str(name)] = parse_section(str(name), data)
            except ManifestError as e:
                logger.error("跳过无效清单条目: %s", e)
                errors.append(e)

        declared = {str(n) for n in sections}
        for m in manifests.values():
            dangling = [d for d in m.depends if d not in declared]
            if dangling:
                raise ConfigError(
                    f"包 {m.name} 依赖未声明的包: {', '.join(dangling)}"
                )

        self._manifests = manifests
        self.errors = errors
        logger.info(
            "清单已加载: %s (%d 个包, %d 个无效)",
            self.path, len(manifests), len(errors),
        )
        return list(manifests.values())

    def reload(self) -> list[PackageManifest]:
        self._manifests = None
        return self.load_all()

    def get(self, name: str) -> PackageManifest:
        self.load_all()
        assert self._manifests is not None
        manifest = self._manifests.get(name)
        if manifest is None:
            raise PackageNotFoundError(f"清单中不存在包: {name}")
        return manifest

    def names(self) -> list[str]:
        return [m.name for m in self.load_all()]
