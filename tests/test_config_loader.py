"""Tests for appstate_sync.config_loader -- hierarchical config loading."""

import textwrap

import pytest
import yaml

from appstate_sync.config_loader import (
    CONFIG_ENV_VAR,
    discover_config_files,
    interpolate_env_vars,
    interpolate_tree,
    load_hierarchical_config,
    load_yaml_file,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run from an empty project directory with a fake home."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "fakehome"))
    return tmp_path


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_HOST", "localhost")
        assert interpolate_env_vars("${MY_HOST}") == "localhost"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert (
            interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}")
            == "fallback"
        )

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("MY_PORT", "8080")
        assert interpolate_env_vars("${MY_PORT:-3000}") == "8080"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert (
            interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"
        )

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_tree_interpolation(self, monkeypatch):
        monkeypatch.setenv("SNAP_URL", "https://example.com/db.json")
        data = {"remote": {"url": "${SNAP_URL}", "timeout": 5}, "tags": ["${SNAP_URL}", 1]}
        assert interpolate_tree(data) == {
            "remote": {"url": "https://example.com/db.json", "timeout": 5},
            "tags": ["https://example.com/db.json", 1],
        }


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "debug: true\n")
        _write(isolated / ".appstate_sync" / "config.yml", "debug: false\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        project = _write(isolated / ".appstate_sync" / "config.yml", "a: 1\n")
        global_cfg = _write(
            isolated / "fakehome" / ".config" / "appstate_sync" / "config.yml",
            "b: 2\n",
        )
        assert [p.resolve() for p in discover_config_files()] == [
            project.resolve(),
            global_cfg.resolve(),
        ]

    def test_yaml_extension(self, isolated):
        alt = _write(isolated / ".appstate_sync" / "config.yaml", "a: 1\n")
        assert [p.resolve() for p in discover_config_files()] == [alt.resolve()]

    def test_missing_env_path_skipped(self, isolated, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(isolated / "missing.yml"))
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_wins_top_level_keys(self, isolated):
        _write(
            isolated / ".appstate_sync" / "config.yml",
            """\
            remote:
              url: https://project.example.com
            """,
        )
        _write(
            isolated / "fakehome" / ".config" / "appstate_sync" / "config.yml",
            """\
            remote:
              url: https://global.example.com
              timeout: 30
            debug: true
            """,
        )

        result = load_hierarchical_config()

        assert result["remote"] == {"url": "https://project.example.com"}
        assert result["debug"] is True

    def test_env_interpolated_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("SNAPSHOT_HOST", "snap.example.com")
        _write(
            isolated / ".appstate_sync" / "config.yml",
            "remote:\n  url: https://${SNAPSHOT_HOST}/db.json\n",
        )
        result = load_hierarchical_config()
        assert result["remote"]["url"] == "https://snap.example.com/db.json"

    def test_non_dict_root_skipped(self, isolated, caplog):
        _write(isolated / ".appstate_sync" / "config.yml", "- a\n- b\n")
        with caplog.at_level("WARNING"):
            assert load_hierarchical_config() == {}
        assert "non-dict root" in caplog.text

    def test_empty_file_ignored(self, isolated):
        _write(isolated / ".appstate_sync" / "config.yml", "")
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        _write(isolated / ".appstate_sync" / "config.yml", "remote: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()

    def test_safe_loader_rejects_python_tags(self, tmp_path):
        path = _write(tmp_path / "evil.yml", "x: !!python/object/apply:os.getcwd []\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            load_yaml_file(path)
