"""日志初始化

CLI 入口调用 setup_logging 一次：终端输出走 stderr（stdout 留给
list / query 等命令的结果），--json-log 时每条记录输出一行 JSON，
配置了 log_file 时同样的内容再写一份到文件。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """单行 JSON 记录：timestamp / level / logger / message / module / function / line，
    带异常时追加 exception 字段"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, object] = {
            "timestamp": ts.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handlers(log_file: str) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    return handlers


def setup_logging(
    level: str = "INFO", json_output: bool = False, log_file: str = "",
) -> None:
    """重新配置根日志器；level 无法识别时退回 INFO"""
    reset_logging()
    root = logging.getLogger()
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))

    formatter = JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT)
    for handler in _handlers(log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)


def reset_logging() -> None:
    """摘除并关闭根日志器上的全部 handler"""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
