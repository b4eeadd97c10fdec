"""编排器数据模型

数据类：
- PackageOutcome: 单包结果
- StageReport: 单阶段报告
- OrchestrationReport: 一次编排的完整报告
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from lfsforge.core.models import PackageState


@dataclass
class PackageOutcome:
    """单个包的最终状态"""

    name: str
    state: PackageState = PackageState.PENDING
    message: str = ""
    duration: float = 0.0
    artifact: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "message": self.message,
            "duration": round(self.duration, 3),
            "artifact": self.artifact,
        }


@dataclass
class StageReport:
    """单阶段报告，status 取值 done / skipped / failed"""

    stage: int
    label: str
    status: str = "done"
    reason: str = ""
    packages: list[PackageOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "label": self.label,
            "status": self.status,
            "reason": self.reason,
            "packages": [p.to_dict() for p in self.packages],
        }


@dataclass
class OrchestrationReport:
    """编排执行报告"""

    stages: list[StageReport] = field(default_factory=list)
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error and all(s.status != "failed" for s in self.stages)

    def outcomes(self) -> list[PackageOutcome]:
        return [p for s in self.stages for p in s.packages]

    def count(self, state: PackageState) -> int:
        return sum(1 for p in self.outcomes() if p.state is state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "stages": [s.to_dict() for s in self.stages],
        }
