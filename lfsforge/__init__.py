"""lfsforge - LFS 风格发行版的包构建 / 安装子系统"""

__version__ = "0.3.0"
