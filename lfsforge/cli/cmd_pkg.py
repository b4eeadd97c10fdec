"""CLI — 包数据库命令（fay 兼容）"""

from __future__ import annotations

import click

from lfsforge.cli import _svc
from lfsforge.core.exceptions import NotInstalled


def register(group: click.Group) -> None:
    group.add_command(pkg_group)


@click.group(name="pkg")
def pkg_group() -> None:
    """包数据库: install / remove / list / query / files"""


@pkg_group.command(name="install")
@click.argument("archive", type=click.Path(dir_okay=False))
def pkg_install(archive: str) -> None:
    """将归档解包到目标根目录并登记"""
    svc = _svc()
    with svc.lock:
        rec = svc.db.install(archive)
    click.echo(f"installed {rec.name} {rec.version}")


@pkg_group.command(name="remove")
@click.argument("name")
def pkg_remove(name: str) -> None:
    """删除包的全部文件与记录"""
    svc = _svc()
    with svc.lock:
        svc.db.remove(name)
    click.echo(f"removed {name}")


@pkg_group.command(name="list")
def pkg_list() -> None:
    """列出已安装的包"""
    for name in _svc().db.list():
        click.echo(name)


@pkg_group.command(name="query")
@click.argument("name")
def pkg_query(name: str) -> None:
    """查询包的安装版本"""
    try:
        pkg_name, version = _svc().db.query(name)
    except NotInstalled:
        click.echo(f"{name} is not installed")
        return
    click.echo(f"{pkg_name} {version} [installed]")


@pkg_group.command(name="files")
@click.argument("name")
def pkg_files(name: str) -> None:
    """列出包登记的文件"""
    for path in _svc().db.files(name):
        click.echo(path)
