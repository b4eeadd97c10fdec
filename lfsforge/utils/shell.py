"""子进程执行层

构建脚本（宿主机 bash / chroot 内 bash）、git 克隆、补丁应用都通过
CommandExecutor.execute 发出；测试里换成记录 argv 的假执行器即可，
不必 patch subprocess。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

from lfsforge.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)

# 找不到可执行文件时沿用 shell 的约定
RC_NOT_FOUND = 127
# 超时沿用 coreutils timeout 的约定
RC_TIMEOUT = 124

Argv = str | list[str]


def _as_argv(cmd: Argv) -> list[str]:
    return shlex.split(cmd) if isinstance(cmd, str) else list(cmd)


def _display(cmd: Argv) -> str:
    return cmd if isinstance(cmd, str) else shlex.join(cmd)


@dataclass
class CommandResult:
    """一次子进程调用的返回码与输出"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def exit_info(self) -> str:
        """人类可读的退出描述，负返回码为终止信号"""
        rc = self.returncode
        return f"killed by signal {-rc}" if rc < 0 else f"exit status {rc}"


class CommandExecutor(Protocol):
    """可替换的命令执行后端"""

    def execute(
        self,
        cmd: Argv,
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """在本机直接 fork 子进程；字符串命令按 shlex 切分，不经过 shell"""

    def execute(
        self,
        cmd: Argv,
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        argv = _as_argv(cmd)
        logger.debug("exec %s (cwd=%s)", _display(argv), cwd)
        try:
            proc = subprocess.run(
                argv, cwd=cwd, env=env, timeout=timeout, check=False,
                capture_output=True, text=True, errors="replace",
            )
        except FileNotFoundError as e:
            return CommandResult(RC_NOT_FOUND, "", str(e))
        except subprocess.TimeoutExpired as e:
            logger.warning("命令超时 (%ss): %s", timeout, _display(argv))
            return CommandResult(RC_TIMEOUT, "", f"timed out after {e.timeout}s")
        return CommandResult(proc.returncode, proc.stdout, proc.stderr)


_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    return _executor


def set_executor(executor: CommandExecutor) -> None:
    """替换进程级执行器（测试注入用）"""
    global _executor  # noqa: PLW0603
    _executor = executor


def run_cmd(
    cmd: Argv,
    *,
    cwd: str = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    executor: CommandExecutor | None = None,
) -> CommandResult:
    """执行一条命令，返回码非零时抛 ExecutionError（消息含 label 与 stderr 前 500 字符）"""
    logger.info("  %s: %s (cwd=%s)", label, _display(cmd), cwd)
    result = (executor or _executor).execute(cmd, cwd=cwd, env=env)
    if result.success:
        return result
    raise ExecutionError(f"{label}失败 ({result.exit_info}): {result.stderr[:500]}")
