"""
Synthetic prefetch project generation.

Writes a minimal library crate whose only content is a ``[dependencies]``
table listing every collected crate, so that ``cargo fetch`` run inside it
downloads all of them into the local registry cache.
"""

import errno
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Tuple, Union

import toml

from .error_handling import ErrorCategory, MaterializeError, get_error_handler
from .structured_logging import log_project_written

TEMP_PROJECT_NAME = "temp_prefetch_project"
TEMP_PROJECT_VERSION = "0.0.0"
MANIFEST_FILENAME = "Cargo.toml"
SOURCE_DIRNAME = "src"
PLACEHOLDER_SOURCE = "lib.rs"


def _dump_basic_string(value: str) -> str:
    # JSON escapes are valid in TOML basic strings; DEL is the one control
    # character JSON leaves unescaped.
    return json.dumps(value, ensure_ascii=False).replace("\x7f", "\\u007f")


class ManifestEncoder(toml.TomlEncoder):
    """TomlEncoder that escapes every control character in strings."""

    def __init__(self):
        super().__init__()
        self.dump_funcs[str] = _dump_basic_string


_encoder = ManifestEncoder()


def _quote(value: str) -> str:
    return _encoder.dump_value(value)


def render_manifest(crates: Iterable[Tuple[str, str]]) -> str:
    """
    Render the Cargo.toml of the prefetch project.

    Dependency lines are sorted so the same crate set always renders the
    same document; Cargo itself ignores declaration order.
    """
    lines = [
        "[package]",
        f"name = {_quote(TEMP_PROJECT_NAME)}",
        f"version = {_quote(TEMP_PROJECT_VERSION)}",
        "",
        "[dependencies]",
    ]
    lines.extend(
        f"{_quote(name)} = {_quote(version)}" for name, version in sorted(crates)
    )
    return "\n".join(lines) + "\n"


def _write_project(root: Path, manifest: str) -> None:
    (root / MANIFEST_FILENAME).write_text(manifest, encoding="utf-8")
    source_dir = root / SOURCE_DIRNAME
    source_dir.mkdir()
    (source_dir / PLACEHOLDER_SOURCE).write_text("", encoding="utf-8")


def _write_project_atomic(root: Path, manifest: str) -> None:
    source_dir = root / SOURCE_DIRNAME
    # src/ must not exist, as in the plain mode; rename would replace an empty one.
    if os.path.lexists(source_dir):
        raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(source_dir))

    staging = Path(tempfile.mkdtemp(prefix=".prefetch-", dir=root))
    try:
        _write_project(staging, manifest)
        os.rename(staging / SOURCE_DIRNAME, source_dir)
        os.replace(staging / MANIFEST_FILENAME, root / MANIFEST_FILENAME)
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def make_project(
    output_dir: Union[str, Path],
    crates: Iterable[Tuple[str, str]],
    atomic: bool = False,
) -> Path:
    """
    Create the prefetch project in an existing directory.

    Writes ``Cargo.toml``, creates ``src/`` and an empty ``src/lib.rs``. In
    the default mode the steps run in order with no rollback, so a failure
    after the manifest was written leaves a partial project behind. With
    ``atomic=True`` everything is staged in a temporary directory under
    ``output_dir`` first and moved into place only once staging succeeded.

    Args:
        output_dir: Existing directory to write into
        crates: (name, version) pairs to declare
        atomic: Stage the project before moving it into place

    Returns:
        Path: Path of the written Cargo.toml

    Raises:
        MaterializeError: If any filesystem step fails
    """
    root = Path(output_dir)
    crate_list = list(crates)
    manifest = render_manifest(crate_list)

    try:
        if atomic:
            _write_project_atomic(root, manifest)
        else:
            _write_project(root, manifest)
    except OSError as e:
        get_error_handler().error(
            ErrorCategory.FILESYSTEM,
            f"Failed to write prefetch project: {e}",
            "materializer",
            "make_project",
            exception=e,
            details={"output_dir": str(root), "atomic": atomic},
            suggestions=[
                "Check that the output directory exists and is writable",
                "Remove a src/ directory left over from a previous run",
            ],
        )
        raise MaterializeError(f"Failed to create prefetch project in {root}") from e

    log_project_written(str(root), len(crate_list), atomic)
    return root / MANIFEST_FILENAME
