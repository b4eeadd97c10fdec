"""CLI — 构建产物缓存命令"""

from __future__ import annotations

import time

import click

from lfsforge.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(cache_group)


@click.group(name="cache")
def cache_group() -> None:
    """构建产物缓存"""


@cache_group.command(name="list")
def cache_list() -> None:
    """列出缓存中的产物"""
    artifacts = _svc().cache.list()
    if not artifacts:
        click.echo("缓存为空。")
        return
    for a in artifacts:
        created = time.strftime("%Y-%m-%d %H:%M", time.localtime(a.created_at))
        key = f" [{a.digest}]" if a.digest else ""
        click.echo(f"  {a.name:24s} {a.version:12s} {created}{key}  {a.path}")


@cache_group.command(name="clear")
@click.argument("name", required=False)
@click.option("--version", "version", default="", help="只清除指定版本")
def cache_clear(name: str | None, version: str) -> None:
    """清空缓存；指定 NAME 时只清除该包"""
    svc = _svc()
    with svc.lock:
        count = svc.cache.invalidate(name, version) if name else svc.cache.clear()
    click.echo(f"已删除 {count} 个缓存条目")
