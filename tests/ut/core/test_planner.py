"""DependencyPlanner 单元测试"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from lfsforge.core.exceptions import DependencyUnmet
from lfsforge.core.models import PackageManifest
from lfsforge.core.planner import DependencyPlanner


def _m(name: str, stage: int = 1, order: int | None = None, depends=None, provides=None):
    return PackageManifest(
        name=name, version="1.0", stage=stage, build_order=order,
        url=f"https://x.org/{name}.tar.xz",
        depends=list(depends or []), provides=list(provides or []),
    )


def _db(installed=(), satisfied=()):
    db = MagicMock()
    db.is_installed.side_effect = lambda n: n in installed
    db.satisfied.side_effect = lambda m: m.name in satisfied
    return db


class TestPlan:
    def test_build_order_then_declaration(self) -> None:
        planner = DependencyPlanner([_m("X", order=5), _m("Y", order=1), _m("Z")])
        assert planner.plan(1) == ["Y", "X", "Z"]

    def test_stable_for_equal_order(self) -> None:
        planner = DependencyPlanner([_m("b", order=1), _m("a", order=1), _m("c"), _m("d")])
        assert planner.plan(1) == ["b", "a", "c", "d"]

    def test_deterministic(self) -> None:
        planner = DependencyPlanner([_m(f"p{i}", order=i % 3) for i in range(20)])
        first = planner.plan(1)
        assert all(planner.plan(1) == first for _ in range(5))

    def test_stage_filter(self) -> None:
        planner = DependencyPlanner([_m("a", stage=1), _m("b", stage=2), _m("c", stage=1)])
        assert planner.plan(1) == ["a", "c"]
        assert planner.plan(2) == ["b"]
        assert planner.plan(7) == []

    def test_depends_do_not_reorder(self) -> None:
        planner = DependencyPlanner([_m("app", order=1, depends=["lib"]), _m("lib", order=2)])
        assert planner.plan(1) == ["app", "lib"]

    def test_stages(self) -> None:
        planner = DependencyPlanner([_m("a", stage=3), _m("b", stage=1), _m("c", stage=3)])
        assert planner.stages() == [1, 3]


class TestCheckDependencies:
    def test_all_installed(self) -> None:
        planner = DependencyPlanner([_m("lib"), _m("app", depends=["lib"])])
        planner.check_dependencies(planner._by_name["app"], _db(installed={"lib"}))

    def test_missing(self) -> None:
        planner = DependencyPlanner([_m("a"), _m("b"), _m("app", depends=["a", "b"])])
        with pytest.raises(DependencyUnmet) as exc:
            planner.check_dependencies(planner._by_name["app"], _db(installed={"a"}))
        assert exc.value.missing == ["b"]
        assert exc.value.package == "app"
        assert "Dependency not met" in str(exc.value)

    def test_satisfied_dependency_counts(self) -> None:
        planner = DependencyPlanner([_m("lib", provides=["/usr/lib/libz.so"]), _m("app", depends=["lib"])])
        planner.check_dependencies(planner._by_name["app"], _db(satisfied={"lib"}))

    def test_no_depends(self) -> None:
        planner = DependencyPlanner([_m("a")])
        db = _db()
        planner.check_dependencies(planner._by_name["a"], db)
        db.is_installed.assert_not_called()
