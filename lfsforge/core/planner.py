"""依赖规划器

构建顺序 = 阶段过滤 + build_order 稳定排序；依赖边只做事后检查，
既不参与排序，也不做跨阶段的拓扑重排。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from lfsforge.core.exceptions import DependencyUnmet
from lfsforge.core.models import PackageManifest

logger = logging.getLogger(__name__)


class InstalledIndex(Protocol):
    """依赖检查所需的包数据库最小接口"""

    def is_installed(self, name: str) -> bool: ...

    def satisfied(self, manifest: PackageManifest) -> bool: ...


class DependencyPlanner:
    """按阶段生成构建计划，并在构建前检查依赖"""

    def __init__(self, manifests: Iterable[PackageManifest]) -> None:
        self._manifests = list(manifests)
        self._by_name = {m.name: m for m in self._manifests}

    def plan(self, stage: int) -> list[str]:
        """返回指定阶段的构建计划（包名列表）

        sorted 为稳定排序：build_order 相同或均缺省时保持声明顺序。
        """
        members = [m for m in self._manifests if m.stage == stage]
        ordered = sorted(members, key=lambda m: m.sort_key)
        return [m.name for m in ordered]

    def stages(self) -> list[int]:
        return sorted({m.stage for m in self._manifests})

    def check_dependencies(self, manifest: PackageManifest, db: InstalledIndex) -> None:
        """依赖全部已安装（或已由 provides 满足）才放行，否则抛 DependencyUnmet"""
        missing = [dep for dep in manifest.depends if not self._is_met(dep, db)]
        if missing:
            logger.error("依赖未满足: %s 缺少 %s", manifest.name, missing)
            raise DependencyUnmet(manifest.name, missing)

    def _is_met(self, dep: str, db: InstalledIndex) -> bool:
        if db.is_installed(dep):
            return True
        dep_manifest = self._by_name.get(dep)
        return dep_manifest is not None and db.satisfied(dep_manifest)
