"""CLI — 规划 / 编排 / 单包构建与安装 / 源码预下载"""

from __future__ import annotations

import click

from lfsforge.cli import _svc
from lfsforge.core.exceptions import ArchiveNotFound
from lfsforge.services.orchestrator import OrchestrationReport, Orchestrator


def register(group: click.Group) -> None:
    group.add_command(plan)
    group.add_command(build)
    group.add_command(status)
    group.add_command(make)
    group.add_command(install)
    group.add_command(fetch)


@click.command()
@click.option("--stage", "-s", type=int, default=None, help="只显示指定阶段")
def plan(stage: int | None) -> None:
    """显示各阶段的构建顺序"""
    svc = _svc()
    planner = svc.planner
    cfg = svc.config
    stages = [stage] if stage is not None else planner.stages()
    for s in stages:
        names = planner.plan(s)
        click.echo(f"[{cfg.stage_label(s)}] {len(names)} 个包")
        for i, name in enumerate(names, 1):
            m = svc.store.get(name)
            order = "-" if m.build_order is None else str(m.build_order)
            env = m.environment(cfg.chroot_stage).value
            deps = f" <- {', '.join(m.depends)}" if m.depends else ""
            click.echo(f"  {i:3d}. {m.name:24s} {m.version:12s} order={order:4s} env={env}{deps}")
    for err in svc.store.errors:
        click.echo(f"  [跳过] {err}", err=True)


def _print_report(report: OrchestrationReport) -> None:
    for s in report.stages:
        reason = f" ({s.reason})" if s.reason else ""
        click.echo(f"[{s.label}] {s.status}{reason}")
        for p in s.packages:
            msg = f"  {p.message}" if p.message else ""
            click.echo(f"  {p.name:24s} {p.state.value}{msg}")


@click.command()
@click.option("--stage", "-s", "stages", type=int, multiple=True, help="只执行指定阶段（可多次指定）")
@click.option("--resume", is_flag=True, help="跳过已完成的阶段")
@click.option("--force", is_flag=True, help="忽略已满足 / 已安装 / 缓存，强制重建")
@click.option("--skip", "skip", type=int, multiple=True, help="跳过指定阶段（可多次指定）")
def build(stages: tuple[int, ...], resume: bool, force: bool, skip: tuple[int, ...]) -> None:
    """按阶段构建并安装全部包"""
    orch = Orchestrator(_svc())
    try:
        report = orch.run(stages or None, force=force, resume=resume, skip=skip)
    except Exception:
        _print_report(orch.report)
        raise
    _print_report(report)
    click.echo(f"成功: {'是' if report.success else '否'}")


@click.command()
def status() -> None:
    """显示阶段完成情况与已安装包数量"""
    svc = _svc()
    orch = Orchestrator(svc)
    for row in orch.status():
        mark = "[done]   " if row["done"] else "[pending]"
        click.echo(f"  {mark} {row['label']} ({row['packages']} 个包)")
    click.echo(f"已安装: {len(svc.db.list())} 个包")
    state = orch.load_state()
    if state.last_error:
        click.echo(f"上次错误: {state.last_error}")


@click.command()
@click.argument("name")
@click.option("--force", is_flag=True, help="忽略缓存重新构建")
def make(name: str, force: bool) -> None:
    """只构建单个包的产物（不安装）"""
    svc = _svc()
    manifest = svc.store.get(name)
    with svc.lock:
        digest = svc.builder.cache_digest(manifest)
        artifact = None if force else svc.cache.get(manifest.name, manifest.version, digest)
        if artifact is None:
            svc.planner.check_dependencies(manifest, svc.db)
            artifact = svc.builder.build(manifest, digest)
            click.echo(f"构建完成: {name}")
        else:
            click.echo(f"缓存命中: {name}")
    click.echo(f"产物路径: {artifact.path}")


@click.command()
@click.argument("name")
@click.option("--force", is_flag=True, help="已安装时也重新安装")
def install(name: str, force: bool) -> None:
    """安装单个包（产物缺失时先构建）"""
    svc = _svc()
    with svc.lock:
        rec = svc.installer.install(name, force=force)
    click.echo(f"installed {rec.name} {rec.version} ({len(rec.files)} 个文件)")


@click.command()
@click.argument("names", nargs=-1)
@click.option("--stage", "-s", "stages", type=int, multiple=True, help="只下载指定阶段（可多次指定）")
@click.option("--verify", "verify_only", is_flag=True, help="只按 SHA256SUMS 校验，不下载")
def fetch(names: tuple[str, ...], stages: tuple[int, ...], verify_only: bool) -> None:
    """预先下载源码包并生成 SHA256SUMS"""
    svc = _svc()
    sources = svc.sources
    if verify_only:
        click.echo(f"校验通过: {sources.verify_checksums()} 个源码包")
        return

    if names:
        manifests = [svc.store.get(n) for n in names]
    else:
        manifests = [
            m for m in svc.store.load_all() if not stages or m.stage in stages
        ]
        manifests.sort(key=lambda m: (m.stage, m.name))

    with svc.lock:
        report = sources.download(manifests)
        sources.verify_checksums()
        path = sources.write_checksums()
    click.echo(f"就绪: {len(report.ready)} 个, git 源: {len(report.git)} 个")
    click.echo(f"校验和: {path}")
    if not report.success:
        for name, reason in report.failed.items():
            click.echo(f"  [失败] {name}: {reason}", err=True)
        raise ArchiveNotFound(f"{len(report.failed)} 个包源码下载失败: {', '.join(report.failed)}")
