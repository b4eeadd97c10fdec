"""统一异常体系

所有业务异常继承 LfsForgeError，每个类携带 code 字段标识错误类别。
CLI 层据此输出一行诊断并以非零状态退出，测试可据此断言错误种类。

传播策略:
  - ManifestError 由清单加载器按条目吞掉并记录诊断
  - 构建 / 依赖 / 归档类错误向上传播，中止当前包与当前阶段
  - PathContainmentViolation 在任何层级都不捕获，直到 CLI 入口
"""

from __future__ import annotations


class LfsForgeError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(LfsForgeError):
    """配置文件缺失、格式错误或依赖悬空"""

    code = "CONFIG_ERROR"


class ValidationError(LfsForgeError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ManifestError(LfsForgeError):
    """单个包清单条目无效（仅影响该条目）"""

    code = "MANIFEST_ERROR"

    def __init__(self, package: str, message: str) -> None:
        super().__init__(f"[{package}] {message}")
        self.package = package


class PackageNotFoundError(LfsForgeError):
    """清单中不存在指定的包"""

    code = "PACKAGE_NOT_FOUND"


class DependencyUnmet(LfsForgeError):
    """依赖包尚未安装"""

    code = "DEPENDENCY_UNMET"

    def __init__(self, package: str, missing: list[str]) -> None:
        super().__init__(f"Dependency not met: {package} 需要 {', '.join(missing)}")
        self.package = package
        self.missing = missing


class BuildFailure(LfsForgeError):
    """构建步骤以非零状态退出"""

    code = "BUILD_FAILURE"

    def __init__(self, package: str, command: str, exit_info: str) -> None:
        super().__init__(f"构建失败 {package}: `{command}` ({exit_info})")
        self.package = package
        self.command = command
        self.exit_info = exit_info


class ArchiveNotFound(LfsForgeError):
    """归档文件不存在"""

    code = "ARCHIVE_NOT_FOUND"


class ArchiveError(LfsForgeError):
    """归档损坏或解压出错"""

    code = "ARCHIVE_ERROR"


class ChecksumMismatch(LfsForgeError):
    """源码包与 SHA256SUMS 记录不一致"""

    code = "CHECKSUM_MISMATCH"

    def __init__(self, mismatched: list[str]) -> None:
        super().__init__(f"{len(mismatched)} 个源码包校验失败: {', '.join(mismatched)}")
        self.mismatched = mismatched


class ArtifactMissing(LfsForgeError):
    """构建产物缺失且无法生成"""

    code = "ARTIFACT_MISSING"


class NotInstalled(LfsForgeError):
    """包未安装（调用方可恢复）"""

    code = "NOT_INSTALLED"

    def __init__(self, name: str) -> None:
        super().__init__(f"package not installed: {name}")
        self.name = name


class FileConflict(LfsForgeError):
    """文件已被其他包占有"""

    code = "FILE_CONFLICT"

    def __init__(self, package: str, conflicts: dict[str, str]) -> None:
        sample = ", ".join(f"{p} ({o})" for p, o in list(conflicts.items())[:5])
        super().__init__(
            f"{package} 与已安装包存在 {len(conflicts)} 个文件冲突: {sample}"
        )
        self.package = package
        self.conflicts = conflicts


class PathContainmentViolation(LfsForgeError):
    """试图修改目标根目录之外的路径"""

    code = "PATH_CONTAINMENT"

    def __init__(self, path: str, root: str) -> None:
        super().__init__(f"路径 '{path}' 位于目标根目录 '{root}' 之外")
        self.path = path
        self.root = root


class LockHeldError(LfsForgeError):
    """目标根目录已被另一个进程锁定"""

    code = "LOCK_HELD"


class ExecutionError(LfsForgeError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"
