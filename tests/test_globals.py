"""Test the globals lifecycle.

Globals may be added freely until the extensions are initialized. After
that only names that already exist can be updated.
"""

from __future__ import annotations

import pytest

from kiln import DictLoader, Environment, LogicError
from kiln.extensions import Extension


class SiteExtension(Extension):
    def get_globals(self):
        return {"site": "kiln", "year": 2024}


class BrokenGlobalsExtension(Extension):
    def get_globals(self):
        return [("site", "kiln")]


class TestAddGlobal:
    """add_global() before and after initialization."""

    def test_overwrite_before_init(self):
        """Before initialization the last value wins."""
        env = Environment()
        env.add_global("x", 1)
        env.add_global("x", 2)
        assert env.get_globals()["x"] == 2

    def test_global_rendered(self):
        """Globals fill names the context does not define."""
        env = Environment()
        env.add_global("site", "kiln")
        assert env.from_string("{{ site }}").render() == "kiln"

    def test_context_wins(self):
        """Context values shadow globals."""
        env = Environment()
        env.add_global("site", "kiln")
        assert env.from_string("{{ site }}").render(site="other") == "other"

    def test_new_global_after_init_rejected(self):
        """New names are rejected once the extensions are initialized."""
        env = Environment()
        env.from_string("Hi")
        with pytest.raises(LogicError, match="late"):
            env.add_global("late", 1)

    def test_existing_global_updated_after_init(self):
        """Existing names can still be updated after initialization."""
        env = Environment(loader=DictLoader({"page.html": "{{ site }}"}))
        env.add_global("site", "before")
        assert env.render("page.html") == "before"

        env.add_global("site", "after")

        assert env.render("page.html") == "after"
        assert env.get_globals()["site"] == "after"

    def test_extension_global_updatable_after_init(self):
        """Globals contributed by extensions count as existing."""
        env = Environment()
        env.add_extension(SiteExtension())
        env.from_string("Hi")
        env.add_global("year", 2025)
        assert env.get_globals()["year"] == 2025

    def test_rejected_after_runtime_init_only(self):
        """Runtime initialization alone closes the globals."""
        env = Environment()
        env.extension_set.init_runtime(env)
        with pytest.raises(LogicError):
            env.add_global("late", 1)


class TestGetGlobals:
    """Merging and snapshotting."""

    def test_local_overrides_extension(self):
        """Locally added globals win over extension globals."""
        env = Environment()
        env.add_extension(SiteExtension())
        env.add_global("site", "local")
        assert env.get_globals() == {"site": "local", "year": 2024}

    def test_fresh_copy_before_init(self):
        """Before initialization every call merges anew."""
        env = Environment()
        env.get_globals()["injected"] = True
        assert "injected" not in env.get_globals()
        assert not env.extension_set.is_initialized()

    def test_snapshot_after_init(self):
        """After initialization each call returns an equal, separate copy."""
        env = Environment()
        env.add_global("site", "kiln")
        env.from_string("Hi")
        first, second = env.get_globals(), env.get_globals()
        assert first == second == {"site": "kiln"}
        assert first is not second

    def test_returned_map_cannot_add_globals(self):
        """Writing into the returned map leaves the frozen name set intact."""
        env = Environment()
        env.add_global("x", 1)
        assert env.from_string("{{ x }}").render() == "1"
        env.get_globals()["y"] = 1
        with pytest.raises(LogicError, match="Unable to add global \"y\""):
            env.add_global("y", 2)
        assert "y" not in env.get_globals()
        assert env.merge_globals({}) == {"x": 1}

    def test_returned_map_before_init_is_detached(self):
        env = Environment()
        env.get_globals()["y"] = 1
        env.add_global("y", 2)
        assert env.get_globals() == {"y": 2}

    def test_non_dict_extension_globals(self):
        """Extensions must return a dict of globals."""
        env = Environment()
        env.add_extension(BrokenGlobalsExtension())
        with pytest.raises(LogicError, match="must return a dict"):
            env.get_globals()


class TestMergeGlobals:
    """merge_globals() completes a context with globals."""

    def test_merge_does_not_mutate_context(self):
        """The caller's mapping is left untouched."""
        env = Environment()
        env.add_global("site", "kiln")
        context = {"name": "World"}
        merged = env.merge_globals(context)
        assert merged == {"name": "World", "site": "kiln"}
        assert context == {"name": "World"}

    def test_context_precedence(self):
        env = Environment()
        env.add_global("a", 2)
        env.add_global("b", 3)
        assert env.merge_globals({"a": 1}) == {"a": 1, "b": 3}

    def test_context_value_kept(self):
        """Context keys are never overwritten."""
        env = Environment()
        env.add_global("site", "kiln")
        assert env.merge_globals({"site": None}) == {"site": None}
