"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from cratework.config import WorkspaceConfig


CORE_MANIFEST = """\
[package]
name = "acme-core"
version = "0.1.0-alpha.1"
edition = "2021"

[dependencies]
serde = "1.0"
"""

UTILS_MANIFEST = """\
[package]
name = "acme-utils"
version = "0.1.0-alpha.1"
edition = "2021"

[dependencies]
acme-core = { version = "0.1.0-alpha.1", path = "../acme-core" }
"""

APP_MANIFEST = """\
# Application crate
[package]
name = "acme-app"
version = "0.1.0-alpha.1"
edition = "2021"

[dependencies]
acme-core = "0.1.0-alpha.1"
acme-utils = { git = "https://github.com/acme/acme-utils", branch = "main", version = "0.1.0-alpha.1" }
tokio = { version = "1", features = ["full"] }

[dev-dependencies]
acme-core = "0.1.0-alpha.1"
"""


def write_manifest(directory: Path, content: str) -> Path:
    """Write a Cargo.toml into ``directory``, creating it if needed."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "Cargo.toml"
    path.write_text(content, encoding="utf-8")
    return path


def package_manifest(name: str, version: str, dependencies: str = "") -> str:
    """Build a minimal Cargo.toml for a package."""
    content = f'[package]\nname = "{name}"\nversion = "{version}"\n'
    if dependencies:
        content += f"\n[dependencies]\n{dependencies}\n"
    return content


@pytest.fixture
def sample_manifest():
    """Sample Cargo.toml content with table and bare dependencies."""
    return APP_MANIFEST


@pytest.fixture
def workspace(tmp_path):
    """Three-package workspace: acme-core, acme-utils, acme-app."""
    write_manifest(tmp_path / "acme-core", CORE_MANIFEST)
    write_manifest(tmp_path / "acme-utils", UTILS_MANIFEST)
    write_manifest(tmp_path / "acme-app", APP_MANIFEST)
    return tmp_path


@pytest.fixture
def workspace_config(workspace):
    """Configuration for the sample workspace."""
    return WorkspaceConfig(root=workspace, namespace="acme")


@pytest.fixture
def make_package(tmp_path):
    """Factory writing ``<tmp_path>/<subdir>/Cargo.toml`` for a package."""

    def _make(subdir: str, name: str, version: str, dependencies: str = "") -> Path:
        return write_manifest(tmp_path / subdir, package_manifest(name, version, dependencies))

    return _make
