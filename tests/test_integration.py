"""
Integration tests for cargo-prefetch.
Tests complete extraction-to-project workflows across several manifests.
"""

import json

import pytest
import toml

from cargo_prefetch.aggregate import collect_crates
from cargo_prefetch.cli_config import get_config, reset_config
from cargo_prefetch.error_handling import ManifestReadError, MissingVersionError
from cargo_prefetch.materializer import TEMP_PROJECT_NAME, make_project
from cargo_prefetch.parsers import extract_manifest_dependencies


class TestEndToEndScenarios:
    """Test complete prefetch runs."""

    def test_dependency_and_dev_dependency_collapse(self, write_manifest):
        """serde/1.0 as a dependency of A and a dev-dependency of B is one crate."""
        a = write_manifest('[dependencies]\nserde = "1.0"\n', crate="a")
        b = write_manifest('[dev-dependencies]\nserde = "1.0"\n', crate="b")

        assert collect_crates([a, b]) == {("serde", "1.0")}

    def test_path_dependency_aborts_run(self, write_manifest, output_dir):
        """A versionless path crate aborts before anything is written."""
        good = write_manifest('[dependencies]\nserde = "1.0"\n', crate="good")
        bad = write_manifest('[dependencies]\nfoo = { path = "../foo" }\n', crate="bad")

        with pytest.raises(MissingVersionError):
            crates = collect_crates([good, bad])
            make_project(output_dir, crates)

        assert list(output_dir.iterdir()) == []

    def test_invalid_version_run_succeeds(self, write_manifest, output_dir):
        """An invalid requirement is dropped and the run completes."""
        manifest = write_manifest('[dependencies]\nbar = "not-a-version"\n')

        assert extract_manifest_dependencies(manifest).dependencies == ()

        crates = collect_crates([manifest])
        make_project(output_dir, crates)

        data = toml.loads((output_dir / "Cargo.toml").read_text())
        assert data["dependencies"] == {}

    def test_conflicting_requirements_both_declared(self, write_manifest):
        """No conflict detection: two requirements give two entries."""
        a = write_manifest('[dependencies]\nrand = "0.7"\n', crate="a")
        b = write_manifest('[dependencies]\nrand = { version = "0.8" }\n', crate="b")

        assert collect_crates([a, b]) == {("rand", "0.7"), ("rand", "0.8")}

    def test_missing_manifest_aborts_run(self, sample_cargo_toml, temp_dir):
        """Unreadable inputs fail the whole collection."""
        with pytest.raises(ManifestReadError):
            collect_crates([sample_cargo_toml, str(temp_dir / "gone" / "Cargo.toml")])


class TestRoundTrip:
    """Test that generated projects describe exactly the collected crates."""

    def test_materialized_manifest_reextracts_to_same_set(
        self, sample_cargo_toml, write_manifest, output_dir
    ):
        """Re-extracting the generated Cargo.toml yields the same pairs."""
        other = write_manifest(
            """
            [dependencies]
            anyhow = "1"
            regex = ">= 1.5, < 2"
            serde = "1.0"

            [dev-dependencies]
            tempfile = "~3.8"
            """,
            crate="other",
        )
        crates = collect_crates([sample_cargo_toml, other])

        manifest_path = make_project(output_dir, crates)
        reextracted = extract_manifest_dependencies(str(manifest_path))

        assert {d.key for d in reextracted.dependencies} == crates
        assert reextracted.dev_dependencies == ()

    def test_package_section_is_fixed(self, sample_cargo_toml, output_dir):
        """The generated package name and version never depend on input."""
        make_project(output_dir, collect_crates([sample_cargo_toml]))

        data = toml.loads((output_dir / "Cargo.toml").read_text())
        assert data["package"] == {"name": TEMP_PROJECT_NAME, "version": "0.0.0"}


class TestConfigurationIntegration:
    """Test that configuration drives extraction policies."""

    def test_config_file_skip_policy(self, write_manifest):
        """A project config file can switch missing versions to skip."""
        with open(".cargo-prefetch.json", "w", encoding="utf-8") as f:
            json.dump({"prefetch": {"missing_version_policy": "skip"}}, f)
        reset_config()

        manifest = write_manifest(
            '[dependencies]\nfoo = { path = "../foo" }\nserde = "1.0"\n'
        )

        assert collect_crates([manifest]) == {("serde", "1.0")}

    def test_yaml_config_file(self):
        """YAML config files are read too."""
        with open(".cargo-prefetch.yaml", "w", encoding="utf-8") as f:
            f.write("prefetch:\n  invalid_version_policy: error\n  atomic_write: true\n")
        reset_config()

        config = get_config()

        assert config.prefetch.invalid_version_policy == "error"
        assert config.prefetch.atomic_write is True

    def test_environment_overrides(self, monkeypatch, write_manifest):
        """Environment variables override defaults."""
        monkeypatch.setenv("CARGO_PREFETCH_INVALID_VERSION_POLICY", "error")
        monkeypatch.setenv("CARGO_PREFETCH_ATOMIC", "yes")
        reset_config()

        config = get_config()

        assert config.prefetch.invalid_version_policy == "error"
        assert config.prefetch.atomic_write is True

    def test_invalid_environment_policy_falls_back(self, monkeypatch):
        """Unknown policy values revert to the defaults."""
        monkeypatch.setenv("CARGO_PREFETCH_MISSING_VERSION_POLICY", "ignore")
        reset_config()

        assert get_config().prefetch.missing_version_policy == "error"

    def test_max_file_size_limit(self, monkeypatch, write_manifest):
        """Manifests above the configured size are refused."""
        monkeypatch.setenv("CARGO_PREFETCH_MAX_FILE_SIZE_MB", "1")
        reset_config()
        manifest = write_manifest("# " + "x" * (1024 * 1024 + 1) + "\n")

        with pytest.raises(ManifestReadError, match="too large"):
            extract_manifest_dependencies(manifest)

    def test_quoted_yaml_values_are_converted(self):
        """String values from YAML take the type of the setting."""
        with open(".cargo-prefetch.yaml", "w", encoding="utf-8") as f:
            f.write('security:\n  max_file_size_mb: "5"\n')
            f.write('prefetch:\n  atomic_write: "yes"\n')
        reset_config()

        config = get_config()

        assert config.security.max_file_size_mb == 5
        assert config.prefetch.atomic_write is True

    def test_unconvertible_value_keeps_default(self, write_manifest):
        """A value of the wrong type is ignored instead of crashing the run."""
        with open(".cargo-prefetch.yaml", "w", encoding="utf-8") as f:
            f.write("security:\n  max_file_size_mb: ten\n")
        reset_config()
        manifest = write_manifest('[dependencies]\nserde = "1.0"\n')

        assert get_config().security.max_file_size_mb == 10
        assert collect_crates([manifest]) == {("serde", "1.0")}
