"""构建命令模板

命令字符串中的 ${NAME} 占位符按固定变量表替换；
$${NAME} 转义为字面量 ${NAME}，其余 $VAR 形式原样交给 shell。

占位符集合在加载清单时即校验，未知占位符直接拒绝，
不会出现执行期"原样残留"的情况。
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

# 渲染时可用的全部占位符
PLACEHOLDERS = frozenset({
    "NPROC", "version", "name", "PKG", "DESTDIR", "PREFIX",
    "TARGET", "SYSROOT", "TOOLS", "SOURCES", "SRC",
})

_PATTERN = re.compile(r"\$(\$?)\{([A-Za-z_][A-Za-z0-9_]*)\}")


class TemplateError(ValueError):
    """模板引用了未知占位符或缺少变量"""


@dataclass(frozen=True)
class CommandTemplate:
    """单条构建命令模板"""

    source: str

    @classmethod
    def parse(cls, source: str, allowed: frozenset[str] = PLACEHOLDERS) -> CommandTemplate:
        unknown = sorted(
            {m.group(2) for m in _PATTERN.finditer(source) if not m.group(1)} - allowed
        )
        if unknown:
            raise TemplateError(
                f"未知占位符 {', '.join('${' + u + '}' for u in unknown)}: {source}"
            )
        return cls(source=source)

    @property
    def placeholders(self) -> set[str]:
        return {m.group(2) for m in _PATTERN.finditer(self.source) if not m.group(1)}

    def render(self, variables: Mapping[str, str]) -> str:
        missing = self.placeholders - set(variables)
        if missing:
            raise TemplateError(f"缺少变量 {sorted(missing)}: {self.source}")

        def _sub(m: re.Match[str]) -> str:
            if m.group(1):
                return "${" + m.group(2) + "}"
            return str(variables[m.group(2)])

        return _PATTERN.sub(_sub, self.source)

    def __str__(self) -> str:
        return self.source
