"""Tests for Cargo.toml parsing and mutation."""

import pytest
import tomlkit
from semver import Version

from cratework.errors import (
    InvalidVersionError,
    ManifestError,
    ManifestParseError,
    MissingFieldError,
)
from cratework.manifest import CargoManifest, is_namespaced, load_manifest, parse_version
from cratework.models import DependencyType


class TestParseVersion:
    """Test lenient version parsing."""

    def test_parses_prerelease(self):
        """Should keep the prerelease label intact."""
        version = parse_version("0.20.0-alpha.1")
        assert version == Version(0, 20, 0, prerelease="alpha.1")

    def test_non_semver_returns_none(self):
        """Requirement strings that aren't full versions should yield None."""
        assert parse_version("1.0") is None
        assert parse_version("^0.3") is None
        assert parse_version(None) is None
        assert parse_version(3) is None


class TestNamespace:
    """Test namespace membership."""

    def test_prefix_match(self):
        assert is_namespaced("acme-core", "acme")
        assert is_namespaced("acme", "acme")
        assert not is_namespaced("serde", "acme")


class TestCargoManifest:
    """Test CargoManifest parsing."""

    def test_parses_package_fields(self, sample_manifest):
        """Should read name, version and every dependency section."""
        manifest = CargoManifest.from_string(sample_manifest, "acme-app/Cargo.toml")

        assert manifest.package_name == "acme-app"
        assert manifest.version == Version.parse("0.1.0-alpha.1")

        kinds = {(d.name, d.kind) for d in manifest.dependencies}
        assert ("acme-core", DependencyType.NORMAL) in kinds
        assert ("acme-core", DependencyType.DEV) in kinds
        assert ("tokio", DependencyType.NORMAL) in kinds

    def test_parses_git_dependency(self, sample_manifest):
        """Table entries should expose git URL and branch."""
        manifest = CargoManifest.from_string(sample_manifest, "Cargo.toml")
        utils = next(d for d in manifest.dependencies if d.name == "acme-utils")

        assert utils.git == "https://github.com/acme/acme-utils"
        assert utils.ref == "main"
        assert utils.version == Version.parse("0.1.0-alpha.1")
        assert not utils.is_local

    def test_parses_tag_and_path(self):
        """Tags count as the ref; path entries are local."""
        content = (
            '[package]\nname = "acme-x"\nversion = "1.0.0"\n\n'
            "[build-dependencies]\n"
            'acme-gen = { git = "https://example.com/gen", tag = "v1.0.0" }\n'
            'acme-macros = { path = "../macros" }\n'
        )
        manifest = CargoManifest.from_string(content, "Cargo.toml")
        deps = {d.name: d for d in manifest.dependencies}

        assert deps["acme-gen"].ref == "v1.0.0"
        assert deps["acme-gen"].kind == DependencyType.BUILD
        assert deps["acme-gen"].version is None
        assert deps["acme-macros"].is_local

    def test_non_semver_dependency_version(self, sample_manifest):
        """A requirement like "1" parses as a dependency without a version."""
        manifest = CargoManifest.from_string(sample_manifest, "Cargo.toml")
        tokio = next(d for d in manifest.dependencies if d.name == "tokio")
        assert tokio.version is None

    def test_missing_package_table(self):
        """A workspace-only manifest has no package."""
        with pytest.raises(MissingFieldError) as exc_info:
            CargoManifest.from_string('[workspace]\nmembers = ["a"]\n', "Cargo.toml")
        assert exc_info.value.field == "package.name"

    def test_missing_version(self):
        with pytest.raises(MissingFieldError) as exc_info:
            CargoManifest.from_string('[package]\nname = "acme-x"\n', "Cargo.toml")
        assert exc_info.value.field == "package.version"

    def test_inherited_version_is_missing(self):
        """version.workspace = true has no literal version to work with."""
        content = '[package]\nname = "acme-x"\nversion.workspace = true\n'
        with pytest.raises(MissingFieldError):
            CargoManifest.from_string(content, "Cargo.toml")

    def test_invalid_version(self):
        with pytest.raises(InvalidVersionError) as exc_info:
            CargoManifest.from_string('[package]\nname = "acme-x"\nversion = "1.0"\n', "Cargo.toml")
        assert exc_info.value.version == "1.0"
        assert isinstance(exc_info.value, ManifestError)

    def test_invalid_toml(self):
        with pytest.raises(ManifestParseError):
            CargoManifest.from_string("[package\nname = ", "Cargo.toml")

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ManifestParseError):
            load_manifest(tmp_path / "Cargo.toml")

    def test_namespaced_dependencies(self, sample_manifest):
        manifest = CargoManifest.from_string(sample_manifest, "Cargo.toml")
        names = [d.name for d in manifest.namespaced_dependencies("acme")]
        assert sorted(names) == ["acme-core", "acme-core", "acme-utils"]


class TestManifestMutation:
    """Test in-place edits of the TOML document."""

    def test_set_version(self, sample_manifest):
        manifest = CargoManifest.from_string(sample_manifest, "Cargo.toml")
        manifest.set_version(Version.parse("0.2.0"))

        assert manifest.version == Version.parse("0.2.0")
        assert 'version = "0.2.0"' in manifest.dumps()

    def test_update_dependency_keeps_other_keys(self, sample_manifest):
        """Only the version key of a table entry should change."""
        manifest = CargoManifest.from_string(sample_manifest, "Cargo.toml")
        manifest.update_dependency("acme-utils", Version.parse("0.1.0-alpha.2"))

        document = tomlkit.parse(manifest.dumps())
        entry = document["dependencies"]["acme-utils"]
        assert entry["version"] == "0.1.0-alpha.2"
        assert entry["git"] == "https://github.com/acme/acme-utils"
        assert entry["branch"] == "main"

    def test_update_dependency_all_sections(self, sample_manifest):
        """A bare string is replaced in every section that names the dependency."""
        manifest = CargoManifest.from_string(sample_manifest, "Cargo.toml")
        manifest.update_dependency("acme-core", Version.parse("0.1.0-alpha.2"))

        document = tomlkit.parse(manifest.dumps())
        assert document["dependencies"]["acme-core"] == "0.1.0-alpha.2"
        assert document["dev-dependencies"]["acme-core"] == "0.1.0-alpha.2"
        assert all(
            d.version == Version.parse("0.1.0-alpha.2")
            for d in manifest.dependencies
            if d.name == "acme-core"
        )

    def test_update_dependency_without_version_key(self):
        """Path-only entries gain no version key."""
        content = '[package]\nname = "acme-x"\nversion = "1.0.0"\n\n[dependencies]\nacme-y = { path = "../y" }\n'
        manifest = CargoManifest.from_string(content, "Cargo.toml")
        manifest.update_dependency("acme-y", Version.parse("2.0.0"))

        assert "version" not in tomlkit.parse(manifest.dumps())["dependencies"]["acme-y"]

    def test_save_round_trip_preserves_comments(self, tmp_path, sample_manifest):
        """Saving and reloading should keep comments, formatting and edits."""
        path = tmp_path / "Cargo.toml"
        path.write_text(sample_manifest)

        manifest = load_manifest(path)
        manifest.set_version(Version.parse("0.1.0-alpha.2"))
        manifest.save()

        content = path.read_text()
        assert content.startswith("# Application crate\n")
        assert 'tokio = { version = "1", features = ["full"] }' in content

        reloaded = load_manifest(path)
        assert reloaded.version == Version.parse("0.1.0-alpha.2")
        assert reloaded.package_name == "acme-app"
