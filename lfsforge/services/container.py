"""服务容器 — 统一依赖注入

清单、规划器、缓存、构建器、包数据库、安装器都通过容器获取，
同一容器内共享实例（包数据库的归属索引、清单解析结果等）。

依赖关系图（→ 表示依赖）:
  planner   → store
  cache     → guard
  builder   → cache, sources
  installer → store, db, cache, builder, planner

用法:
    container = ServiceContainer()              # 使用全局 get_config()
    container = ServiceContainer(config=cfg)    # 显式注入配置
    container.db.list()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lfsforge.core.config import Config
    from lfsforge.core.manifest import ManifestStore
    from lfsforge.core.planner import DependencyPlanner
    from lfsforge.core.safety import RootGuard
    from lfsforge.services.build import Builder, Fetcher, SourceFetcher
    from lfsforge.services.cache import ArtifactCache
    from lfsforge.services.installer import Installer
    from lfsforge.services.package_db import PackageDatabase
    from lfsforge.utils.lock import RootLock
    from lfsforge.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器

    executor / fetcher 可注入，用于测试或替换执行方式。
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from lfsforge.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor
        self._fetcher = fetcher

    @property
    def config(self) -> Config:
        return self._config

    # ---- 核心 ----

    @property
    def guard(self) -> RootGuard:
        if "guard" not in self._instances:
            from lfsforge.core.safety import RootGuard
            guard = RootGuard(self._config.target_root)
            guard.validate_paths(
                build_dir=self._config.build_path,
                cache_dir=self._config.cache_path,
                db_dir=self._config.under_root(self._config.db_dir),
                state_file=self._config.state_path,
                log_dir=self._config.log_path,
                sources_dir=self._config.sources_path,
            )
            self._instances["guard"] = guard
        return self._instances["guard"]  # type: ignore[return-value]

    @property
    def store(self) -> ManifestStore:
        if "store" not in self._instances:
            from lfsforge.core.manifest import ManifestStore
            self._instances["store"] = ManifestStore(self._config.manifest)
        return self._instances["store"]  # type: ignore[return-value]

    @property
    def planner(self) -> DependencyPlanner:
        if "planner" not in self._instances:
            from lfsforge.core.planner import DependencyPlanner
            self._instances["planner"] = DependencyPlanner(self.store.load_all())
        return self._instances["planner"]  # type: ignore[return-value]

    @property
    def lock(self) -> RootLock:
        if "lock" not in self._instances:
            from lfsforge.utils.lock import RootLock
            self._instances["lock"] = RootLock(self.guard.root)
        return self._instances["lock"]  # type: ignore[return-value]

    # ---- 服务层 ----

    @property
    def cache(self) -> ArtifactCache:
        if "cache" not in self._instances:
            from lfsforge.services.cache import ArtifactCache
            self._instances["cache"] = ArtifactCache(
                self._config.cache_path, self.guard,
                compression=self._config.compression,
            )
        return self._instances["cache"]  # type: ignore[return-value]

    @property
    def db(self) -> PackageDatabase:
        if "db" not in self._instances:
            from lfsforge.services.package_db import PackageDatabase
            self._instances["db"] = PackageDatabase(
                self.guard.root, self._config.db_dir,
                detect_conflicts=self._config.detect_conflicts,
                guard=self.guard,
            )
        return self._instances["db"]  # type: ignore[return-value]

    @property
    def sources(self) -> SourceFetcher:
        if "sources" not in self._instances:
            from lfsforge.services.build import SourceFetcher
            self._instances["sources"] = SourceFetcher(
                self._config, self.guard,
                fetcher=self._fetcher, executor=self._executor,
            )
        return self._instances["sources"]  # type: ignore[return-value]

    @property
    def builder(self) -> Builder:
        if "builder" not in self._instances:
            from lfsforge.services.build import Builder
            self._instances["builder"] = Builder(
                self._config, self.guard, self.cache,
                sources=self.sources, executor=self._executor,
            )
        return self._instances["builder"]  # type: ignore[return-value]

    @property
    def installer(self) -> Installer:
        if "installer" not in self._instances:
            from lfsforge.services.installer import Installer
            self._instances["installer"] = Installer(
                self.store, self.db, self.cache, self.builder,
                planner=self.planner,
            )
        return self._instances["installer"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（CLI 使用）"""
    global _global  # noqa: PLW0603
    if _global is None:
        _global = ServiceContainer()
    return _global


def reset_container() -> None:
    """丢弃全局容器，配置变更后重新装配"""
    global _global  # noqa: PLW0603
    _global = None
