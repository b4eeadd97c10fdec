"""构建编排器模块

拆分说明：
- models.py: 单包结果 / 阶段报告 / 编排报告
- orchestrator.py: 阶段驱动与单包状态机
"""

from lfsforge.services.orchestrator.models import (
    OrchestrationReport,
    PackageOutcome,
    StageReport,
)
from lfsforge.services.orchestrator.orchestrator import Orchestrator

__all__ = [
    "OrchestrationReport",
    "Orchestrator",
    "PackageOutcome",
    "StageReport",
]
