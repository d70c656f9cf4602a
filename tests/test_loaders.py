"""Test the built-in template loaders."""

from __future__ import annotations

import os

import pytest

from kiln import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    Loader,
    TemplateNotFoundError,
)


class TestFileSystemLoader:
    """FileSystemLoader tests."""

    @pytest.fixture
    def templates(self, tmp_path):
        (tmp_path / "custom").mkdir()
        (tmp_path / "default").mkdir()
        (tmp_path / "default" / "pages").mkdir()
        (tmp_path / "custom" / "nav.html").write_text("custom nav")
        (tmp_path / "default" / "nav.html").write_text("default nav")
        (tmp_path / "default" / "pages" / "about.html").write_text("about")
        return tmp_path

    def test_get_source(self, templates):
        """Source and filename of the matching file."""
        loader = FileSystemLoader(templates / "default")
        source, filename = loader.get_source("pages/about.html")
        assert source == "about"
        assert filename == str(templates / "default" / "pages" / "about.html")

    def test_search_order(self, templates):
        """The first directory containing the name wins."""
        loader = FileSystemLoader([templates / "custom", templates / "default"])
        assert loader.get_source("nav.html")[0] == "custom nav"
        assert loader.get_source("pages/about.html")[0] == "about"

    def test_not_found(self, templates):
        """Missing names raise TemplateNotFoundError."""
        loader = FileSystemLoader(templates / "custom")
        with pytest.raises(TemplateNotFoundError, match="missing.html"):
            loader.get_source("missing.html")
        with pytest.raises(TemplateNotFoundError):
            loader.get_cache_key("missing.html")

    def test_directory_is_not_a_template(self, templates):
        """Only files are found."""
        assert not FileSystemLoader(templates / "default").exists("pages")

    def test_cache_key_is_resolved_path(self, templates):
        """The cache key is the absolute path of the matching file."""
        loader = FileSystemLoader(templates / "default")
        key = loader.get_cache_key("nav.html")
        assert key == str((templates / "default" / "nav.html").resolve())

    def test_is_fresh(self, templates):
        """Fresh while the file is not newer than the timestamp."""
        path = templates / "default" / "nav.html"
        os.utime(path, (500.0, 500.0))
        loader = FileSystemLoader(templates / "default")
        assert loader.is_fresh("nav.html", 500.0)
        assert not loader.is_fresh("nav.html", 499.0)

    def test_list_templates(self, templates):
        """All files, as sorted posix paths, deduplicated across directories."""
        loader = FileSystemLoader([templates / "custom", templates / "default"])
        assert loader.list_templates() == ["nav.html", "pages/about.html"]


class TestDictLoader:
    """DictLoader tests."""

    def test_get_source(self):
        """Source with no filename."""
        assert DictLoader({"a.html": "A"}).get_source("a.html") == ("A", None)

    def test_did_you_mean(self):
        """Close matches are suggested."""
        loader = DictLoader({"index.html": "Home"})
        with pytest.raises(TemplateNotFoundError, match="Did you mean 'index.html'"):
            loader.get_source("indx.html")

    def test_cache_key_contains_source(self):
        """Changing the source changes the cache key."""
        loader = DictLoader({"a.html": "one"})
        before = loader.get_cache_key("a.html")
        loader.set_template("a.html", "two")
        assert loader.get_cache_key("a.html") != before

    def test_cache_key_separates_name_and_source(self):
        """Names containing a colon never share a key with another template."""
        loader = DictLoader({"a": "b:c", "a:b": "c"})
        assert loader.get_cache_key("a") != loader.get_cache_key("a:b")

    def test_colon_names_render_their_own_source(self):
        env = Environment(loader=DictLoader({"a": "b:c", "a:b": "c"}))
        assert env.get_template_class("a") != env.get_template_class("a:b")
        assert env.render("a") == "b:c"
        assert env.render("a:b") == "c"

    def test_always_fresh(self):
        """Known templates are always fresh."""
        assert DictLoader({"a.html": "A"}).is_fresh("a.html", 0)

    def test_fresh_check_requires_template(self):
        """Freshness of an unknown name is a not-found error."""
        with pytest.raises(TemplateNotFoundError):
            DictLoader({}).is_fresh("a.html", 0)

    def test_exists_and_list(self):
        loader = DictLoader({"b.html": "B", "a.html": "A"})
        assert loader.exists("a.html")
        assert not loader.exists("c.html")
        assert loader.list_templates() == ["a.html", "b.html"]


class TestChoiceLoader:
    """ChoiceLoader tests."""

    def test_first_match_wins(self):
        """Earlier loaders override later ones."""
        loader = ChoiceLoader(
            [DictLoader({"nav.html": "custom"}), DictLoader({"nav.html": "default"})]
        )
        assert loader.get_source("nav.html") == ("custom", None)

    def test_cache_key_from_matching_loader(self):
        """Cache key and freshness come from the loader that has the template."""
        fallback = DictLoader({"footer.html": "base"})
        loader = ChoiceLoader([DictLoader({"nav.html": "custom"}), fallback])
        assert loader.get_cache_key("footer.html") == fallback.get_cache_key("footer.html")
        assert loader.is_fresh("footer.html", 0)

    def test_not_found(self):
        """No loader has the template."""
        loader = ChoiceLoader([DictLoader({}), DictLoader({})])
        with pytest.raises(TemplateNotFoundError, match="2 loaders"):
            loader.get_source("missing.html")

    def test_add_loader(self):
        """Loaders can be appended."""
        loader = ChoiceLoader([])
        extra = DictLoader({"a.html": "A"})
        loader.add_loader(extra)
        assert loader.get_loaders() == [extra]
        assert loader.exists("a.html")

    def test_list_templates_merged(self):
        loader = ChoiceLoader(
            [DictLoader({"a.html": "A"}), DictLoader({"a.html": "A", "b.html": "B"})]
        )
        assert loader.list_templates() == ["a.html", "b.html"]


class TestFunctionLoader:
    """FunctionLoader tests."""

    def test_string_result(self):
        """A plain string gets the placeholder filename."""
        loader = FunctionLoader(lambda name: "Hi" if name == "a.html" else None)
        assert loader.get_source("a.html") == ("Hi", "<function>")

    def test_tuple_result(self):
        """A tuple provides the filename."""
        loader = FunctionLoader(lambda name: ("Hi", f"mem://{name}"))
        assert loader.get_source("a.html") == ("Hi", "mem://a.html")

    def test_none_is_not_found(self):
        loader = FunctionLoader(lambda name: None)
        with pytest.raises(TemplateNotFoundError):
            loader.get_source("a.html")
        assert not loader.exists("a.html")
        assert loader.list_templates() == []

    def test_cache_key_follows_source(self):
        """A changed source maps to a new cache key."""
        sources = {"a.html": "one"}
        loader = FunctionLoader(sources.get)
        before = loader.get_cache_key("a.html")
        sources["a.html"] = "two"
        assert loader.get_cache_key("a.html") != before

    def test_cache_key_separates_name_and_source(self):
        sources = {"a": "b:c", "a:b": "c"}
        loader = FunctionLoader(sources.get)
        assert loader.get_cache_key("a") != loader.get_cache_key("a:b")


class TestLoaderProtocol:
    """Built-in loaders satisfy the Loader protocol."""

    @pytest.mark.parametrize(
        "loader",
        [
            DictLoader({}),
            ChoiceLoader([]),
            FunctionLoader(lambda name: None),
            FileSystemLoader("."),
        ],
    )
    def test_isinstance(self, loader):
        assert isinstance(loader, Loader)
