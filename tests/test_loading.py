"""Test Environment.load_template(): memoization, cache use and activation.

Pipeline under test: identity → memo → in-process unit → stored artifact
→ compile/write/activate → init runtime → instantiate.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from kiln import (
    DictLoader,
    Environment,
    ErrorCode,
    Template,
    TemplateNotFoundError,
    TemplateSyntaxError,
)
from kiln.environment.units import get_unit, is_defined
from kiln.extensions import Extension, NodeVisitor

from .helpers import CompileCounter, StaleDictLoader, store_artifact, unique


class RuntimeExtension(Extension):
    """Records init_runtime() calls."""

    def __init__(self) -> None:
        self.calls: list[Environment] = []

    def init_runtime(self, env: Environment) -> None:
        self.calls.append(env)


class ExplodingVisitor(NodeVisitor):
    def visit(self, template, env):
        raise ValueError("boom")


class CustomTemplate(Template):
    pass


def _env(source: str, **kwargs) -> Environment:
    return Environment(loader=DictLoader({"page.html": source}), **kwargs)


class TestMemoization:
    """One Template per identity per Environment."""

    def test_same_instance(self):
        """Repeated loads return the identical object."""
        env = _env(unique("Hi"))
        assert env.load_template("page.html") is env.load_template("page.html")

    def test_get_template_alias(self):
        """get_template() is load_template()."""
        env = _env(unique("Hi"))
        assert env.get_template("page.html") is env.load_template("page.html")

    def test_memo_hit_skips_cache(self, recording_cache):
        """A memoized template touches neither the cache nor the compiler."""
        env = _env(unique("Hi"), cache=recording_cache)
        env.load_template("page.html")
        recording_cache.reset()
        counter = CompileCounter(env)

        env.load_template("page.html")

        assert not recording_cache.calls
        assert counter.count == 0

    def test_index_is_separate_template(self):
        """An embedded index loads a distinct template."""
        env = _env(unique("Hi"))
        counter = CompileCounter(env)
        base = env.load_template("page.html")
        embedded = env.load_template("page.html", 2)
        assert embedded is not base
        assert embedded.identity == f"{base.identity}_2"
        assert counter.count == 2

    def test_loader_change_loads_new_source(self):
        """A new loader with a new source yields a new identity."""
        env = _env("One")
        assert env.render("page.html") == "One"
        env.set_loader(DictLoader({"page.html": "Two"}))
        assert env.render("page.html") == "Two"

    def test_concurrent_loads_share_one_template(self):
        """Concurrent loads of one name compile once and share the instance."""
        env = _env(unique("Hi"))
        counter = CompileCounter(env)
        with ThreadPoolExecutor(max_workers=8) as pool:
            templates = list(pool.map(lambda _: env.load_template("page.html"), range(32)))
        assert all(t is templates[0] for t in templates)
        assert counter.count == 1


class TestActivation:
    """Units are activated at most once per process."""

    def test_compile_then_activate(self):
        """A first load compiles and activates the unit."""
        env = _env(unique("Hi {{ name }}"))
        counter = CompileCounter(env)
        template = env.load_template("page.html")
        assert counter.count == 1
        assert is_defined(template.identity)
        assert get_unit(template.identity) is template.unit

    def test_second_environment_reuses_unit(self, recording_cache):
        """A unit activated by one environment is reused by another."""
        source = unique("Hi {{ name }}")
        first = _env(source).load_template("page.html")

        env = _env(source, cache=recording_cache)
        counter = CompileCounter(env)
        second = env.load_template("page.html")

        assert second is not first
        assert second.unit is first.unit
        assert counter.count == 0
        assert not recording_cache.calls
        assert second.render(name="kiln") == "Hi kiln"

    def test_template_class(self):
        """Instances are created from the configured template class."""
        env = _env(unique("Hi"), template_class=CustomTemplate)
        template = env.load_template("page.html")
        assert isinstance(template, CustomTemplate)
        assert template.environment is env
        assert template.name == "page.html"


class TestArtifactCache:
    """Stored artifacts, writes and auto-reload."""

    def test_missing_artifact_compiles_and_writes(self, recording_cache):
        """Without a stored artifact the template is compiled and written."""
        env = _env(unique("Hi"), cache=recording_cache)
        counter = CompileCounter(env)
        template = env.load_template("page.html")

        assert counter.count == 1
        assert recording_cache.calls["activate"] == 1
        assert recording_cache.calls["write"] == 1
        assert template.identity in recording_cache

    def test_stored_artifact_is_activated(self, recording_cache):
        """A stored artifact is used without compiling."""
        env = _env(unique("Hi {{ name }}"), cache=recording_cache)
        identity, _ = store_artifact(env, "page.html")
        assert not is_defined(identity)
        recording_cache.reset()
        counter = CompileCounter(env)

        template = env.load_template("page.html")

        assert counter.count == 0
        assert recording_cache.calls["activate"] == 1
        assert recording_cache.calls["write"] == 0
        assert recording_cache.calls["get_timestamp"] == 0
        assert template.render(name="cache") == "Hi cache"

    def test_auto_reload_uses_fresh_artifact(self, recording_cache):
        """With auto-reload a fresh artifact is still used."""
        env = _env(unique("Hi"), cache=recording_cache, auto_reload=True)
        store_artifact(env, "page.html")
        recording_cache.reset()
        counter = CompileCounter(env)

        env.load_template("page.html")

        assert recording_cache.calls["get_timestamp"] == 1
        assert recording_cache.calls["activate"] == 1
        assert counter.count == 0

    def test_auto_reload_recompiles_stale_artifact(self, recording_cache):
        """With auto-reload a stale artifact is replaced."""
        loader = StaleDictLoader({"page.html": unique("Hi")})
        env = Environment(loader=loader, cache=recording_cache, auto_reload=True)
        store_artifact(env, "page.html")
        recording_cache.reset()
        counter = CompileCounter(env)

        env.load_template("page.html")

        assert recording_cache.calls["activate"] == 0
        assert recording_cache.calls["write"] == 1
        assert counter.count == 1

    def test_stale_artifact_trusted_without_auto_reload(self, recording_cache):
        """Without auto-reload freshness is never checked."""
        loader = StaleDictLoader({"page.html": unique("Hi")})
        env = Environment(loader=loader, cache=recording_cache)
        store_artifact(env, "page.html")
        recording_cache.reset()
        counter = CompileCounter(env)

        env.load_template("page.html")

        assert recording_cache.calls["get_timestamp"] == 0
        assert counter.count == 0

    def test_auto_reload_follows_debug(self):
        """auto_reload defaults to the debug flag."""
        assert Environment(debug=True).is_auto_reload()
        assert not Environment().is_auto_reload()
        assert not Environment(debug=True, auto_reload=False).is_auto_reload()

    def test_filesystem_cache_writes_artifact(self, tmp_path):
        """The filesystem cache persists plain Python source atomically."""
        env = _env(unique("Hi {{ name }}"), cache=tmp_path / "cache")
        template = env.load_template("page.html")
        key = Path(env.get_cache(original=False).generate_key("page.html", template.identity))

        assert key.is_file()
        content = key.read_text("utf-8")
        assert content.startswith("# kiln template: 'page.html'")
        assert "def render(ctx, rt):" in content
        assert list(key.parent.iterdir()) == [key]

    def test_filesystem_cache_artifact_reused(self, tmp_path):
        """A new environment over the same cache directory loads the artifact."""
        source = unique("Hi {{ name }}")
        store_artifact(_env(source, cache=tmp_path), "page.html")

        env = _env(source, cache=tmp_path)
        counter = CompileCounter(env)

        assert env.render("page.html", name="disk") == "Hi disk"
        assert counter.count == 0


class TestLoadFailures:
    """Errors propagate and nothing is memoized or written."""

    def test_not_found(self):
        """Unknown names raise TemplateNotFoundError."""
        with pytest.raises(TemplateNotFoundError):
            Environment().load_template("missing.html")

    def test_syntax_error_not_memoized(self, recording_cache):
        """A failed compile is retried on the next load and never written."""
        env = _env(unique("Hi ") + "{{ name ", cache=recording_cache)
        counter = CompileCounter(env)

        for _ in range(2):
            with pytest.raises(TemplateSyntaxError) as exc_info:
                env.load_template("page.html")

        assert exc_info.value.name == "page.html"
        assert counter.count == 2
        assert recording_cache.calls["write"] == 0

    def test_unexpected_compile_error_wrapped(self):
        """Unexpected pipeline exceptions become TemplateSyntaxError."""
        env = _env(unique("Hi"))
        env.add_node_visitor(ExplodingVisitor())

        with pytest.raises(TemplateSyntaxError, match="boom") as exc_info:
            env.load_template("page.html")

        assert exc_info.value.code is ErrorCode.COMPILE_ERROR
        assert isinstance(exc_info.value.__cause__, ValueError)


class TestRuntimeInitialization:
    """Extensions are initialized before the first instance."""

    def test_init_runtime_once(self):
        """init_runtime runs once per environment."""
        extension = RuntimeExtension()
        env = Environment(loader=DictLoader({"a.html": unique("A"), "b.html": unique("B")}))
        env.add_extension(extension)

        env.load_template("a.html")
        env.load_template("b.html")

        assert extension.calls == [env]

    def test_init_runtime_without_compile(self):
        """init_runtime runs even when the unit was already activated."""
        source = unique("Hi")
        first = _env(source)
        first.add_extension(RuntimeExtension())
        first.load_template("page.html")

        extension = RuntimeExtension()
        env = _env(source)
        env.add_extension(extension)
        counter = CompileCounter(env)
        env.load_template("page.html")

        assert counter.count == 0
        assert extension.calls == [env]
        assert env.extension_set.is_initialized()
