"""Tests for workspace configuration loading."""

import logging

import pytest

from cratework.config import (
    DEFAULT_COMMAND_TIMEOUT,
    ConfigError,
    WorkspaceConfig,
    find_workspace_root,
    load_config,
)


class TestLoadConfig:
    """Test configuration resolution."""

    def test_defaults(self, tmp_path):
        config = load_config(tmp_path, namespace="acme")

        assert config.root == tmp_path.resolve()
        assert config.namespace == "acme"
        assert config.command_timeout == DEFAULT_COMMAND_TIMEOUT
        assert config.overlay_path == tmp_path.resolve() / ".cargo" / "config.toml"

    def test_namespace_falls_back_to_directory_name(self, tmp_path, caplog):
        root = tmp_path / "acme"
        root.mkdir()
        with caplog.at_level(logging.WARNING, logger="cratework.config"):
            config = load_config(root)

        assert config.namespace == "acme"
        assert "No namespace configured" in caplog.text

    def test_reads_config_file(self, tmp_path):
        (tmp_path / "cratework.toml").write_text(
            "[cratework]\n"
            'namespace = "widget"\n'
            "command-timeout = 60\n"
            "max-concurrency = 2\n"
            'skip-dirs = ["target", "vendor"]\n'
            'test-command = ["cargo", "nextest", "run", "--manifest-path", "{manifest}"]\n'
        )
        config = load_config(tmp_path)

        assert config.namespace == "widget"
        assert config.command_timeout == 60.0
        assert config.max_concurrency == 2
        assert config.skip_dirs == frozenset({"target", "vendor"})
        assert config.test_command[:3] == ("cargo", "nextest", "run")

    def test_explicit_arguments_win(self, tmp_path):
        (tmp_path / "cratework.toml").write_text('[cratework]\nnamespace = "widget"\nspecs-dir = "docs"\n')
        config = load_config(tmp_path, namespace="acme", specs_dir=None, max_concurrency=8)

        assert config.namespace == "acme"
        # None overrides are ignored
        assert config.specs_dir == "docs"
        assert config.max_concurrency == 8

    def test_zero_timeout_disables(self, tmp_path):
        (tmp_path / "cratework.toml").write_text("[cratework]\ncommand-timeout = 0\n")
        assert load_config(tmp_path, namespace="acme").command_timeout is None

    def test_unknown_key_warns(self, tmp_path, caplog):
        (tmp_path / "cratework.toml").write_text('[cratework]\nflavour = "mint"\n')
        with caplog.at_level(logging.WARNING, logger="cratework.config"):
            load_config(tmp_path, namespace="acme")
        assert "flavour" in caplog.text

    def test_invalid_file(self, tmp_path):
        (tmp_path / "cratework.toml").write_text("[cratework\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path, namespace="acme")

    def test_invalid_value(self, tmp_path):
        (tmp_path / "cratework.toml").write_text('[cratework]\nmax-concurrency = "lots"\n')
        with pytest.raises(ConfigError):
            load_config(tmp_path, namespace="acme")

    def test_package_command(self, tmp_path):
        config = WorkspaceConfig(root=tmp_path, namespace="acme")
        manifest = tmp_path / "acme-core" / "Cargo.toml"

        argv = config.package_command(config.test_command, manifest)
        assert argv[:4] == ["cargo", "test", "--manifest-path", str(manifest)]


class TestFindWorkspaceRoot:
    """Test workspace root discovery."""

    def test_walks_up_to_marker(self, tmp_path):
        (tmp_path / "cratework.toml").write_text("[cratework]\n")
        nested = tmp_path / "acme-core" / "src"
        nested.mkdir(parents=True)

        assert find_workspace_root(nested) == tmp_path.resolve()

    def test_no_marker(self, tmp_path):
        # Assumes no cratework.toml above the pytest temp directory
        assert find_workspace_root(tmp_path) is None
