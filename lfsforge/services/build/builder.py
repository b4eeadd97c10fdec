"""包构建器

流程:
  1. 工作目录 <build_dir>/<name> 先删后建，准备源码
  2. 按执行环境（host / chroot）包装命令
  3. 渲染配方模板并依次执行，输出追加到 <log_dir>/<name>.log
  4. 将 PKG 目录打包入产物缓存，删除工作目录

任何一步失败即抛 BuildFailure，工作目录原样保留以便排查。
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import IO

from lfsforge.core.config import Config
from lfsforge.core.exceptions import BuildFailure
from lfsforge.core.models import BuildArtifact, PackageManifest
from lfsforge.core.safety import RootGuard
from lfsforge.services.build.environment import BuildEnvironment, environment_for
from lfsforge.services.build.recipes import checks_for, recipe_for
from lfsforge.services.build.source import SourceFetcher
from lfsforge.services.cache import ArtifactCache
from lfsforge.utils.shell import CommandExecutor, CommandResult, get_executor

logger = logging.getLogger(__name__)


class Builder:
    """单包构建器"""

    def __init__(
        self,
        config: Config,
        guard: RootGuard,
        cache: ArtifactCache,
        sources: SourceFetcher | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.config = config
        self.guard = guard
        self.cache = cache
        self._executor = executor
        self.sources = sources or SourceFetcher(config, guard, executor=executor)

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    def work_dir(self, manifest: PackageManifest) -> Path:
        return self.guard.ensure_within(self.config.build_path / manifest.name)

    def log_file(self, manifest: PackageManifest) -> Path:
        return self.guard.ensure_within(self.config.log_path / f"{manifest.name}.log")

    def cache_digest(self, manifest: PackageManifest) -> str:
        """内容寻址模式下的缓存键摘要；name_version 模式返回空串"""
        if self.config.cache_key != "content":
            return ""
        payload = dict(manifest.fingerprint())
        payload["source_digest"] = self.sources.source_digest(manifest)
        blob = json.dumps(payload, sort_keys=True).encode()
        return hashlib.sha256(blob).hexdigest()[:16]

    def _run(
        self, manifest: PackageManifest, command: str,
        env: BuildEnvironment, src: Path, log: IO[str],
    ) -> CommandResult:
        prepared = env.wrap(command, src)
        logger.info("  [%s/%s] %s", manifest.name, env.kind.value, command)
        log.write(f"$ {command}\n")
        log.flush()
        r = self.executor.execute(prepared.argv, cwd=prepared.cwd, env=prepared.env)
        log.write(r.stdout)
        if r.stderr:
            log.write(r.stderr)
        log.write(f"# {r.exit_info}\n")
        log.flush()
        if not r.success:
            logger.error("命令失败 %s: %s (%s)", manifest.name, command, r.exit_info)
        return r

    def build(self, manifest: PackageManifest, digest: str | None = None) -> BuildArtifact:
        """构建单个包并放入产物缓存"""
        start = time.monotonic()
        log_path = self.log_file(manifest)
        work = self.work_dir(manifest)
        self.guard.rmtree(work)
        work.mkdir(parents=True)
        pkg = work / "pkg"
        pkg.mkdir()

        src = self.sources.prepare(manifest, work / "src")
        env = environment_for(manifest, self.config, self.guard)
        variables = env.variables(src, pkg)
        logger.info(
            "构建 %s %s (stage=%d, env=%s)",
            manifest.name, manifest.version, manifest.stage, env.kind.value,
        )

        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as log:
            log.write(f"==== {manifest.name} {manifest.version} ({env.kind.value}) ====\n")
            for template in recipe_for(manifest):
                command = template.render(variables)
                r = self._run(manifest, command, env, src, log)
                if not r.success:
                    raise BuildFailure(manifest.name, command, r.exit_info)
            if self.config.run_checks:
                for template in checks_for(manifest):
                    if not self._run(manifest, template.render(variables), env, src, log).success:
                        logger.warning("测试未通过 (忽略): %s %s", manifest.name, template)

        if digest is None:
            digest = self.cache_digest(manifest)
        artifact = self.cache.put(manifest.name, manifest.version, pkg, digest)
        self.guard.rmtree(work)
        logger.info(
            "%s 构建完成 (%.1fs) -> %s",
            manifest.name, time.monotonic() - start, artifact.path,
        )
        return artifact
