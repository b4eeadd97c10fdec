"""清单条目解析

职责:
- 单个 [packages.<name>] 段 → PackageManifest
- 字段类型校验、源定位校验、命令模板校验
- 任何问题抛 ManifestError，仅影响该条目
"""

from __future__ import annotations

import re
from typing import Any

from lfsforge.core.exceptions import ManifestError
from lfsforge.core.manifest.template import CommandTemplate, TemplateError
from lfsforge.core.models import (
    DEFAULT_STAGE,
    BuildSystem,
    ExecutionEnvironment,
    PackageManifest,
)

# url 模板只允许引用版本与包名
URL_PLACEHOLDERS = frozenset({"version", "name"})

KNOWN_FIELDS = frozenset({
    "version", "stage", "build_system", "build_commands", "check_commands",
    "provides", "depends", "build_order", "url", "use_git", "git_url",
    "safe_flags", "execution_environment", "description",
})


def _str(name: str, key: str, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ManifestError(name, f"字段 {key} 必须为字符串，实际为 {type(value).__name__}")
    return str(value)


def _int(name: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ManifestError(name, f"字段 {key} 必须为整数，实际为 {value!r}")
    return value


def _bool(name: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ManifestError(name, f"字段 {key} 必须为布尔值，实际为 {value!r}")
    return value


def _str_list(name: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ManifestError(name, f"字段 {key} 必须为数组")
    return [_str(name, key, v) for v in value]


def _depends(name: str, value: Any) -> list[str]:
    """依赖既可写成数组，也兼容 "a, b c" 形式的字符串"""
    if isinstance(value, str):
        return [d for d in re.split(r"[,\s]+", value) if d]
    return _str_list(name, "depends", value)


def _templates(name: str, key: str, value: Any) -> list[CommandTemplate]:
    try:
        return [CommandTemplate.parse(cmd) for cmd in _str_list(name, key, value)]
    except TemplateError as e:
        raise ManifestError(name, str(e)) from e


def _enum(name: str, key: str, value: Any, enum_cls: type) -> Any:
    raw = _str(name, key, value)
    try:
        return enum_cls(raw)
    except ValueError as e:
        choices = ", ".join(m.value for m in enum_cls)
        raise ManifestError(name, f"字段 {key} 取值无效 '{raw}'，可选: {choices}") from e


def parse_section(name: str, data: Any) -> PackageManifest:
    """解析单个包定义段"""
    if not isinstance(data, dict):
        raise ManifestError(name, "包定义必须是表/字典")
    if "version" not in data or data["version"] in ("", None):
        raise ManifestError(name, "缺少必填字段 version")

    manifest = PackageManifest(
        name=name,
        version=_str(name, "version", data["version"]),
        stage=_int(name, "stage", data.get("stage", DEFAULT_STAGE)),
        build_system=_enum(name, "build_system", data.get("build_system", "autotools"), BuildSystem),
        build_commands=_templates(name, "build_commands", data.get("build_commands", [])),
        check_commands=_templates(name, "check_commands", data.get("check_commands", [])),
        provides=_str_list(name, "provides", data.get("provides", [])),
        depends=_depends(name, data.get("depends", [])),
        url=_str(name, "url", data.get("url", "")),
        use_git=_bool(name, "use_git", data.get("use_git", False)),
        git_url=_str(name, "git_url", data.get("git_url", "")),
        safe_flags=_bool(name, "safe_flags", data.get("safe_flags", False)),
        description=_str(name, "description", data.get("description", "")),
    )

    if "build_order" in data:
        manifest.build_order = _int(name, "build_order", data["build_order"])
    if "execution_environment" in data:
        manifest.execution_environment = _enum(
            name, "execution_environment", data["execution_environment"],
            ExecutionEnvironment,
        )

    _validate(manifest)
    return manifest


def _validate(m: PackageManifest) -> None:
    if m.use_git and not m.git_url:
        raise ManifestError(m.name, "use_git=true 但未定义 git_url")
    if not m.use_git and not m.url:
        raise ManifestError(m.name, "未定义源码地址 url（或 use_git + git_url）")
    if not m.use_git:
        try:
            CommandTemplate.parse(m.url, allowed=URL_PLACEHOLDERS)
        except TemplateError as e:
            raise ManifestError(m.name, str(e)) from e
    if m.build_system is BuildSystem.CUSTOM and not m.build_commands:
        raise ManifestError(m.name, "build_system=custom 必须提供 build_commands")
    for path in m.provides:
        if not path.startswith("/"):
            raise ManifestError(m.name, f"provides 必须为绝对路径: {path}")
    if m.name in m.depends:
        raise ManifestError(m.name, "包不能依赖自身")
