"""构建状态

记录已完成的阶段与每个包最近一次的状态，供 --resume 使用。
只由编排器读写，落盘为 YAML（原子写入）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from lfsforge.core.models import PackageState
from lfsforge.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


@dataclass
class BuildState:
    """编排状态值对象"""

    completed_stages: list[int] = field(default_factory=list)
    packages: dict[str, PackageState] = field(default_factory=dict)
    last_error: str = ""
    updated_at: str = ""

    # ---- 阶段 ----

    def is_stage_done(self, stage: int) -> bool:
        return stage in self.completed_stages

    def mark_stage_done(self, stage: int) -> None:
        if stage not in self.completed_stages:
            self.completed_stages.append(stage)
            self.completed_stages.sort()

    def reset_stage(self, stage: int) -> None:
        if stage in self.completed_stages:
            self.completed_stages.remove(stage)

    # ---- 包 ----

    def set_package(self, name: str, state: PackageState) -> None:
        self.packages[name] = state

    def package_state(self, name: str) -> PackageState:
        return self.packages.get(name, PackageState.PENDING)

    # ---- 持久化 ----

    def to_dict(self) -> dict:
        return {
            "completed_stages": list(self.completed_stages),
            "packages": {k: v.value for k, v in self.packages.items()},
            "last_error": self.last_error,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BuildState:
        packages: dict[str, PackageState] = {}
        for name, raw in (data.get("packages") or {}).items():
            try:
                packages[str(name)] = PackageState(raw)
            except ValueError:
                logger.warning("构建状态中包 %s 的状态无效: %r，按 pending 处理", name, raw)
        return cls(
            completed_stages=sorted(int(s) for s in data.get("completed_stages") or []),
            packages=packages,
            last_error=str(data.get("last_error") or ""),
            updated_at=str(data.get("updated_at") or ""),
        )

    @classmethod
    def load(cls, path: str | Path) -> BuildState:
        """读取状态文件，不存在时返回空状态"""
        return cls.from_dict(load_yaml(path))

    def save(self, path: str | Path) -> None:
        self.updated_at = datetime.now(tz=timezone.utc).isoformat()
        save_yaml(path, self.to_dict())
        logger.debug("构建状态已保存: %s", path)
