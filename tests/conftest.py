"""
Shared fixtures for cargo-prefetch tests.
"""

import textwrap

import pytest

from cargo_prefetch.cli_config import reset_config
from cargo_prefetch.error_handling import setup_error_handling


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep user config files and CARGO_PREFETCH_* variables out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(workdir)
    for var in [
        "CARGO_PREFETCH_MISSING_VERSION_POLICY",
        "CARGO_PREFETCH_INVALID_VERSION_POLICY",
        "CARGO_PREFETCH_ATOMIC",
        "CARGO_PREFETCH_MAX_FILE_SIZE_MB",
        "CARGO_PREFETCH_LOG_LEVEL",
    ]:
        monkeypatch.delenv(var, raising=False)

    reset_config()
    setup_error_handling()
    yield
    reset_config()


@pytest.fixture
def temp_dir(tmp_path):
    """A scratch directory separate from the working directory."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def output_dir(tmp_path):
    """An existing, empty directory to materialize projects into."""
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def write_manifest(temp_dir):
    """Factory writing ``<temp_dir>/<crate>/Cargo.toml`` and returning its path."""

    def _write(content: str, crate: str = "crate") -> str:
        crate_dir = temp_dir / crate
        crate_dir.mkdir(exist_ok=True)
        manifest = crate_dir / "Cargo.toml"
        manifest.write_text(textwrap.dedent(content))
        return str(manifest)

    return _write


@pytest.fixture
def sample_cargo_toml(write_manifest):
    """A manifest using both declaration shapes and a dev-dependency."""
    return write_manifest(
        """
        [package]
        name = "sample"
        version = "0.1.0"

        [dependencies]
        serde = "1.0"
        tokio = { version = "1.28", features = ["full"] }
        log = "^0.4"

        [dev-dependencies]
        criterion = { version = "0.5", default-features = false }
        """,
        crate="sample",
    )
