"""lfsforge 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常统一在此转为一行诊断 + 非零退出码:
  LfsForgeError → 1，PathContainmentViolation → 2
"""

import os
from typing import Any

import click

from lfsforge import __version__
from lfsforge.core.config import DEFAULT_CONFIG_PATH, init_config
from lfsforge.core.exceptions import LfsForgeError, PathContainmentViolation
from lfsforge.services.container import get_container, reset_container
from lfsforge.utils.logger import setup_logging

EXIT_ERROR = 1
EXIT_CONTAINMENT = 2


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


class LfsForgeGroup(click.Group):
    """把业务异常转换为诊断信息与退出码"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except PathContainmentViolation as e:
            click.echo(f"致命错误 [{e.code}]: {e}", err=True)
            raise click.exceptions.Exit(EXIT_CONTAINMENT) from e
        except LfsForgeError as e:
            click.echo(f"错误 [{e.code}]: {e}", err=True)
            raise click.exceptions.Exit(EXIT_ERROR) from e


@click.group(cls=LfsForgeGroup)
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path", default=DEFAULT_CONFIG_PATH,
    show_default=True, help="配置文件路径",
)
@click.option("--root", default="", help="目标根目录（覆盖配置与 LFS 环境变量）")
def main(config_path: str, root: str) -> None:
    """lfsforge - LFS 风格发行版的包构建与安装"""
    setup_logging(
        level=os.getenv("LFSFORGE_LOG_LEVEL", "INFO"),
        json_output=os.getenv("LFSFORGE_LOG_JSON", "") == "1",
        log_file=os.getenv("LFSFORGE_LOG_FILE", ""),
    )
    init_config(config_path, target_root=root)
    reset_container()


# 注册各领域子命令
from lfsforge.cli.cmd_build import register as _reg_build  # noqa: E402
from lfsforge.cli.cmd_cache import register as _reg_cache  # noqa: E402
from lfsforge.cli.cmd_pkg import register as _reg_pkg  # noqa: E402

_reg_build(main)
_reg_pkg(main)
_reg_cache(main)
