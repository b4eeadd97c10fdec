"""默认构建配方

build_commands 缺省时按 build_system 选用以下命令序列。
所有配方都安装到 ${PKG}（DESTDIR），不直接写目标根目录。
"""

from __future__ import annotations

from lfsforge.core.manifest.template import CommandTemplate
from lfsforge.core.models import BuildSystem, PackageManifest

DEFAULT_RECIPES: dict[BuildSystem, tuple[str, ...]] = {
    BuildSystem.AUTOTOOLS: (
        "if [ -x ./configure ]; then ./configure --prefix=${PREFIX} --disable-static --enable-shared; fi",
        "make -j${NPROC}",
        "make DESTDIR=${PKG} install",
    ),
    BuildSystem.MESON: (
        "meson setup build --prefix=${PREFIX} --buildtype=release -Ddefault_library=shared",
        "meson compile -C build -j ${NPROC}",
        "DESTDIR=${PKG} meson install -C build",
    ),
    BuildSystem.CMAKE: (
        "cmake -S . -B build -G Ninja -DCMAKE_BUILD_TYPE=Release"
        " -DCMAKE_INSTALL_PREFIX=${PREFIX} -DBUILD_SHARED_LIBS=ON",
        "ninja -C build -j${NPROC}",
        "DESTDIR=${PKG} ninja -C build install",
    ),
    BuildSystem.MAKE: (
        "make -j${NPROC}",
        "make DESTDIR=${PKG} PREFIX=${PREFIX} install",
    ),
    BuildSystem.CUSTOM: (),
}

DEFAULT_CHECKS: dict[BuildSystem, tuple[str, ...]] = {
    BuildSystem.AUTOTOOLS: ("make check",),
    BuildSystem.MESON: ("meson test -C build",),
    BuildSystem.CMAKE: ("ctest --test-dir build --output-on-failure",),
    BuildSystem.MAKE: (),
    BuildSystem.CUSTOM: (),
}


def default_recipe(build_system: BuildSystem) -> list[CommandTemplate]:
    return [CommandTemplate.parse(c) for c in DEFAULT_RECIPES[build_system]]


def recipe_for(manifest: PackageManifest) -> list[CommandTemplate]:
    """清单显式命令优先，否则使用构建系统的默认配方"""
    if manifest.build_commands:
        return list(manifest.build_commands)
    return default_recipe(manifest.build_system)


def checks_for(manifest: PackageManifest) -> list[CommandTemplate]:
    if manifest.check_commands:
        return list(manifest.check_commands)
    return [CommandTemplate.parse(c) for c in DEFAULT_CHECKS[manifest.build_system]]
