"""包清单：命令模板、条目解析、清单存储"""

from lfsforge.core.manifest.parser import parse_section
from lfsforge.core.manifest.store import ManifestStore
from lfsforge.core.manifest.template import PLACEHOLDERS, CommandTemplate, TemplateError

__all__ = [
    "PLACEHOLDERS",
    "CommandTemplate",
    "ManifestStore",
    "TemplateError",
    "parse_section",
]
