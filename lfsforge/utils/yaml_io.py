"""落盘工具：YAML 文档与按行记录

config.yml、构建状态 state.yml、包数据库的 info / files 都走这里。
所有写入先落到同目录临时文件再 os.replace，进程中途被杀时
旧文件保持完整。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 单个 YAML 文档的读取上限（字节）
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """以 UTF-8 原子替换 path 的内容，父目录不存在时创建"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent,
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取顶层为映射的 YAML 文档

    文件缺失、内容为空、顶层不是映射时都返回 {}；
    语法错误原样抛出 yaml.YAMLError，超过 MAX_YAML_SIZE 抛 ValueError。
    """
    p = Path(path)
    if not p.is_file():
        return {}

    size = p.stat().st_size
    if size > MAX_YAML_SIZE:
        raise ValueError(f"YAML 文件过大: {p} ({size} 字节 > {MAX_YAML_SIZE})")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error("YAML 解析失败 %s: %s", p, e)
        raise

    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    logger.warning("%s 顶层是 %s 而非映射，按空文档处理", p, type(data).__name__)
    return {}


def save_yaml(path: str | Path, data: Any) -> None:
    """按插入顺序序列化后原子写入"""
    text = yaml.safe_dump(
        data, sort_keys=False, allow_unicode=True, default_flow_style=False,
    )
    atomic_write(Path(path), text)


def write_lines(path: str | Path, lines: list[str]) -> None:
    """每个元素占一行写入（末尾带换行）"""
    atomic_write(Path(path), "".join(f"{line}\n" for line in lines))


def read_lines(path: str | Path) -> list[str]:
    """按行读取，丢弃空白行"""
    with open(path, encoding="utf-8") as fh:
        return [line.rstrip("\n") for line in fh if line.strip()]
