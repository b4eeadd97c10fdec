"""shell.py 执行器与 run_cmd 单元测试"""

from __future__ import annotations

import os

import pytest

from lfsforge.core.exceptions import ExecutionError
from lfsforge.utils.shell import CommandResult, LocalExecutor, run_cmd


class TestCommandResult:
    def test_exit_status(self) -> None:
        r = CommandResult(returncode=2, stdout="", stderr="")
        assert not r.success
        assert r.exit_info == "exit status 2"

    def test_killed_by_signal(self) -> None:
        r = CommandResult(returncode=-9, stdout="", stderr="")
        assert r.exit_info == "killed by signal 9"


class TestLocalExecutor:
    def test_missing_binary_returns_127(self, tmp_path) -> None:
        r = LocalExecutor().execute(["no-such-binary-lfsforge"], cwd=str(tmp_path))
        assert r.returncode == 127

    def test_timeout_returns_124(self, tmp_path) -> None:
        r = LocalExecutor().execute(["sleep", "5"], cwd=str(tmp_path), timeout=1)
        assert r.returncode == 124
        assert not r.success

    def test_argv_list(self, tmp_path) -> None:
        r = LocalExecutor().execute(["bash", "-c", "echo $((1 + 2))"], cwd=str(tmp_path))
        assert r.success
        assert r.stdout.strip() == "3"


class TestRunCmd:
    def test_success(self, tmp_path) -> None:
        r = run_cmd("echo hello", cwd=str(tmp_path), label="test")
        assert r.returncode == 0
        assert "hello" in r.stdout

    def test_failure_raises(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="cmd失败"):
            run_cmd("false", cwd=str(tmp_path))

    def test_custom_label_in_error(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="patch失败"):
            run_cmd("false", cwd=str(tmp_path), label="patch")

    def test_env_passed(self, tmp_path) -> None:
        env = {**os.environ, "LFS_TGT": "x86_64-lfs-linux-gnu"}
        r = run_cmd("env", cwd=str(tmp_path), env=env, label="env_test")
        assert "LFS_TGT=x86_64-lfs-linux-gnu" in r.stdout

    def test_injected_executor(self, tmp_path, fake_executor) -> None:
        fake = fake_executor([CommandResult(returncode=0, stdout="ok", stderr="")])
        r = run_cmd(["git", "status"], cwd=str(tmp_path), executor=fake)
        assert r.stdout == "ok"
        assert fake.calls[0]["cmd"] == ["git", "status"]
