"""构建编排器 - 按阶段驱动 规划 → 构建 → 安装

单包状态机:
  pending → satisfied                                  (provides 全部存在)
  pending → installed                                  (数据库已有记录)
  pending → building → built → installing → installed
  任一转换失败 → failed，中止当前阶段与整次编排

阶段按数字升序执行，阶段内严格串行。BuildState 在 finally 中落盘，
失败时异常继续向上传播。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from lfsforge.core.exceptions import LfsForgeError
from lfsforge.core.models import PackageManifest, PackageState
from lfsforge.core.state import BuildState
from lfsforge.services.container import ServiceContainer
from lfsforge.services.orchestrator.models import (
    OrchestrationReport,
    PackageOutcome,
    StageReport,
)

logger = logging.getLogger(__name__)


class Orchestrator:
    """阶段编排器（持有目标根目录锁）"""

    def __init__(self, container: ServiceContainer | None = None) -> None:
        self.c = container or ServiceContainer()
        self.report = OrchestrationReport()

    def load_state(self) -> BuildState:
        return BuildState.load(self.c.config.state_path)

    def status(self) -> list[dict]:
        """各阶段完成情况（对应原脚本的 [done] / [pending] 列表）"""
        state = self.load_state()
        rows = []
        for stage in self.c.planner.stages():
            rows.append({
                "stage": stage,
                "label": self.c.config.stage_label(stage),
                "done": state.is_stage_done(stage),
                "packages": len(self.c.planner.plan(stage)),
            })
        return rows

    def run(
        self,
        stages: Iterable[int] | None = None,
        *,
        force: bool = False,
        resume: bool = False,
        skip: Iterable[int] = (),
    ) -> OrchestrationReport:
        """执行编排，首个失败包的异常在保存状态后继续抛出"""
        self.report = OrchestrationReport()
        targets = sorted(set(stages)) if stages is not None else self.c.planner.stages()
        skipped = set(skip)

        with self.c.lock:
            state = self.load_state()
            state.last_error = ""
            try:
                for stage in targets:
                    self._run_stage(stage, state, force=force, resume=resume, skipped=skipped)
            except LfsForgeError as e:
                state.last_error = str(e)
                self.report.error = str(e)
                raise
            finally:
                state.save(self.c.config.state_path)

        logger.info(
            "编排完成: %d 个阶段, 安装 %d, 已满足 %d",
            len(self.report.stages),
            self.report.count(PackageState.INSTALLED),
            self.report.count(PackageState.SATISFIED),
        )
        return self.report

    def _run_stage(
        self, stage: int, state: BuildState, *,
        force: bool, resume: bool, skipped: set[int],
    ) -> None:
        stage_report = StageReport(stage=stage, label=self.c.config.stage_label(stage))
        self.report.stages.append(stage_report)

        if stage in skipped:
            stage_report.status, stage_report.reason = "skipped", "--skip"
            logger.info("[Stage %s] 跳过 (--skip)", stage_report.label)
            return
        if resume and not force and state.is_stage_done(stage):
            stage_report.status, stage_report.reason = "skipped", "已完成"
            logger.info("[Stage %s] 已完成，跳过", stage_report.label)
            return

        state.reset_stage(stage)
        plan = self.c.planner.plan(stage)
        logger.info("[Stage %s] 开始: %d 个包 %s", stage_report.label, len(plan), plan)
        for name in plan:
            outcome = PackageOutcome(name=name)
            stage_report.packages.append(outcome)
            try:
                self._run_package(self.c.store.get(name), state, outcome, force=force)
            except LfsForgeError as e:
                outcome.state = PackageState.FAILED
                outcome.message = str(e)
                state.set_package(name, PackageState.FAILED)
                stage_report.status = "failed"
                logger.error("[Stage %s] %s 失败，中止: %s", stage_report.label, name, e)
                raise
        state.mark_stage_done(stage)
        logger.info("[Stage %s] 完成", stage_report.label)

    def _transition(
        self, state: BuildState, outcome: PackageOutcome, to: PackageState,
    ) -> None:
        outcome.state = to
        state.set_package(outcome.name, to)

    def _run_package(
        self, manifest: PackageManifest, state: BuildState,
        outcome: PackageOutcome, *, force: bool,
    ) -> None:
        start = time.monotonic()
        db = self.c.db
        self._transition(state, outcome, PackageState.PENDING)

        if not force and db.satisfied(manifest):
            self._transition(state, outcome, PackageState.SATISFIED)
            outcome.message = "provides 已存在"
            logger.info("  %s: 已满足，跳过构建与安装", manifest.name)
            return
        if not force and db.is_installed(manifest.name):
            self._transition(state, outcome, PackageState.INSTALLED)
            outcome.message = "已安装"
            logger.info("  %s: 已安装，跳过", manifest.name)
            return

        self.c.planner.check_dependencies(manifest, db)

        self._transition(state, outcome, PackageState.BUILDING)
        digest = self.c.builder.cache_digest(manifest)
        artifact = None if force else self.c.cache.get(manifest.name, manifest.version, digest)
        if artifact is None:
            artifact = self.c.builder.build(manifest, digest)
        self._transition(state, outcome, PackageState.BUILT)
        outcome.artifact = artifact.path

        self._transition(state, outcome, PackageState.INSTALLING)
        self.c.installer.install_artifact(artifact)
        self._transition(state, outcome, PackageState.INSTALLED)
        outcome.duration = time.monotonic() - start
