"""安装器

产物 → 目标根目录 + 包数据库记录。已有记录时为幂等空操作。
"""

from __future__ import annotations

import logging
from pathlib import Path

from lfsforge.core.exceptions import ArtifactMissing, BuildFailure
from lfsforge.core.manifest import ManifestStore
from lfsforge.core.models import BuildArtifact, InstalledPackageRecord
from lfsforge.core.planner import DependencyPlanner
from lfsforge.services.build import Builder
from lfsforge.services.cache import ArtifactCache
from lfsforge.services.package_db import PackageDatabase

logger = logging.getLogger(__name__)


class Installer:
    """单包安装器"""

    def __init__(
        self,
        store: ManifestStore,
        db: PackageDatabase,
        cache: ArtifactCache,
        builder: Builder,
        planner: DependencyPlanner | None = None,
    ) -> None:
        self.store = store
        self.db = db
        self.cache = cache
        self.builder = builder
        self.planner = planner

    def resolve_artifact(self, name: str) -> BuildArtifact:
        """缓存优先，缺失时先构建；构建失败转为 ArtifactMissing"""
        manifest = self.store.get(name)
        digest = self.builder.cache_digest(manifest)
        artifact = self.cache.get(manifest.name, manifest.version, digest)
        if artifact is not None:
            return artifact

        if self.planner is not None:
            self.planner.check_dependencies(manifest, self.db)
        try:
            artifact = self.builder.build(manifest, digest)
        except BuildFailure as e:
            raise ArtifactMissing(f"无法生成 {name} 的构建产物: {e}") from e
        if not Path(artifact.path).is_file():
            raise ArtifactMissing(f"构建产物缺失: {artifact.path}")
        return artifact

    def install(self, name: str, force: bool = False) -> InstalledPackageRecord:
        if not force and self.db.is_installed(name):
            logger.info("%s 已安装，跳过", name)
            return self.db.record(name)
        return self.install_artifact(self.resolve_artifact(name))

    def install_artifact(self, artifact: BuildArtifact) -> InstalledPackageRecord:
        if not Path(artifact.path).is_file():
            raise ArtifactMissing(f"构建产物缺失: {artifact.path}")
        return self.db.install(artifact.path)
