"""构建服务模块

拆分说明:
- recipes.py: 各构建系统的默认配方
- environment.py: host / chroot 执行环境与编译选项档位
- source.py: 源码下载、解包、补丁
- builder.py: 单包构建流程
"""

from lfsforge.services.build.builder import Builder
from lfsforge.services.build.environment import (
    ChrootEnvironment,
    HostEnvironment,
    environment_for,
)
from lfsforge.services.build.source import (
    DownloadReport,
    Fetcher,
    SourceFetcher,
    UrlFetcher,
)

__all__ = [
    "Builder",
    "ChrootEnvironment",
    "DownloadReport",
    "Fetcher",
    "HostEnvironment",
    "SourceFetcher",
    "UrlFetcher",
    "environment_for",
]
