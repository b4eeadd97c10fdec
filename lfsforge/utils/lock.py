"""目标根目录互斥锁

同一目标根目录同一时刻只允许一个编排 / 安装进程。
基于 flock（非阻塞），进程退出时内核自动释放。
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import IO

from lfsforge.core.exceptions import LockHeldError

logger = logging.getLogger(__name__)

LOCK_NAME = ".lfsforge.lock"


class RootLock:
    """<root>/.lfsforge.lock 上的排他锁，可作为上下文管理器，同一实例可重入"""

    def __init__(self, root: str | Path) -> None:
        self.path = Path(root) / LOCK_NAME
        self._fh: IO[str] | None = None
        self._depth = 0

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire(self) -> None:
        if self._fh is not None:
            self._depth += 1
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self.path, "a+", encoding="utf-8")  # noqa: SIM115
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            fh.seek(0)
            holder = fh.read().strip() or "?"
            fh.close()
            raise LockHeldError(
                f"目标根目录已被其他进程锁定 (pid={holder}): {self.path}"
            ) from e
        fh.seek(0)
        fh.truncate()
        fh.write(f"{os.getpid()}\n")
        fh.flush()
        self._fh = fh
        self._depth = 1
        logger.debug("已获取锁: %s", self.path)

    def release(self) -> None:
        if self._fh is None:
            return
        self._depth -= 1
        if self._depth > 0:
            return
        fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        self._fh.close()
        self._fh = None
        logger.debug("已释放锁: %s", self.path)

    def __enter__(self) -> RootLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
