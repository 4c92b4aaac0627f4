"""Tests for garden_sync.config_loader — hierarchical config loading."""

import textwrap

import pytest
import yaml

from garden_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with CWD and HOME inside tmp_path and no explicit config path."""
    monkeypatch.delenv("GARDEN_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("NURSERY_TOKEN", "abc")
        assert interpolate_env_vars("${NURSERY_TOKEN}") == "abc"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert (
            interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"
        )

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("HOST_A", "garden.local")
        monkeypatch.setenv("PORT_A", "8443")
        assert (
            interpolate_env_vars("https://${HOST_A}:${PORT_A}")
            == "https://garden.local:8443"
        )

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("PEER_URL", "https://nursery.example.com")
        data = {"peers": {"n": {"url": "${PEER_URL}"}}, "list": ["${PEER_URL}", 3]}
        assert _interpolate_recursive(data) == {
            "peers": {"n": {"url": "https://nursery.example.com"}},
            "list": ["https://nursery.example.com", 3],
        }


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include YAML loading via ConfigLoader subclass."""

    def test_include_relative_file(self, tmp_path):
        _write(tmp_path / "peers.yml", "nursery:\n  url: https://n.example.com\n")
        main = _write(tmp_path / "config.yml", "peers: !include peers.yml\n")

        assert _load_yaml_with_includes(main) == {
            "peers": {"nursery": {"url": "https://n.example.com"}}
        }

    def test_include_nonexistent_raises(self, tmp_path):
        main = _write(tmp_path / "config.yml", "peers: !include missing.yml\n")
        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        a = _write(tmp_path / "a.yml", "x: !include b.yml\n")
        _write(tmp_path / "b.yml", "y: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(a)

    def test_nested_includes(self, tmp_path):
        _write(tmp_path / "c.yml", "val: deep\n")
        _write(tmp_path / "b.yml", "inner: !include c.yml\n")
        a = _write(tmp_path / "a.yml", "outer: !include b.yml\n")
        assert _load_yaml_with_includes(a) == {
            "outer": {"inner": {"val": "deep"}}
        }

    def test_global_safe_loader_not_polluted(self, tmp_path):
        cfg = _write(tmp_path / "test.yml", "x: !include other.yml\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Discovery and bootstrapping
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_env_var_first(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "garden: {}\n")
        project = _write(isolated / ".garden_sync" / "config.yml", "garden: {}\n")
        monkeypatch.setenv("GARDEN_SYNC_CONFIG", str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert project in result

    def test_project_before_global(self, isolated):
        project = _write(isolated / ".garden_sync" / "config.yml", "a: 1\n")
        global_cfg = _write(
            isolated / "home" / ".config" / "garden_sync" / "config.yml",
            "b: 2\n",
        )
        assert discover_config_files() == [project, global_cfg]

    def test_yaml_extension(self, isolated):
        legacy = _write(isolated / ".garden_sync" / "config.yaml", "a: 1\n")
        assert discover_config_files() == [legacy]


class TestEnsureConfig:
    def test_resolve_default_path(self, isolated):
        assert resolve_config_path() == isolated / ".garden_sync" / "config.yml"
        assert not resolve_config_path().exists()

    def test_creates_starter_file(self, isolated):
        path = ensure_config()
        assert path == isolated / ".garden_sync" / "config.yml"
        text = path.read_text()
        assert "peers:" in text
        # Every line is commented out: loading it yields nothing
        assert load_hierarchical_config() == {}

    def test_existing_file_untouched(self, isolated):
        existing = _write(isolated / ".garden_sync" / "config.yml", "a: 1\n")
        assert ensure_config() == existing
        assert existing.read_text() == "a: 1\n"


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_overrides_global_at_section_level(self, isolated):
        _write(
            isolated / "home" / ".config" / "garden_sync" / "config.yml",
            """\
            garden:
              url: https://global.example.com
              token: global-token
            sync:
              page_size: 10
            """,
        )
        _write(
            isolated / ".garden_sync" / "config.yml",
            """\
            garden:
              url: https://project.example.com
            """,
        )

        result = load_hierarchical_config()
        assert result["garden"] == {"url": "https://project.example.com"}
        assert result["sync"] == {"page_size": 10}

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("NURSERY_TOKEN", "s3cret")
        _write(
            isolated / ".garden_sync" / "config.yml",
            """\
            peers:
              nursery:
                url: https://nursery.example.com
                token: "${NURSERY_TOKEN}"
            """,
        )
        result = load_hierarchical_config()
        assert result["peers"]["nursery"]["token"] == "s3cret"

    def test_non_dict_root_skipped(self, isolated, monkeypatch):
        bad = _write(isolated / "bad.yml", "- item1\n- item2\n")
        monkeypatch.setenv("GARDEN_SYNC_CONFIG", str(bad))
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        _write(isolated / ".garden_sync" / "config.yml", "garden: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()
