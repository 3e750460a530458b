"""
Cargo manifest extraction.

Reads a Cargo.toml and returns the crates declared in its ``[dependencies]``
and ``[dev-dependencies]`` tables, keeping only entries whose version is a
valid Cargo version requirement.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .cli_config import POLICY_ERROR, POLICY_SKIP, get_config
from .dependency import Dependency, ManifestDependencies
from .error_handling import (
    ErrorCallback,
    ErrorCategory,
    InvalidVersionRequirement,
    ManifestParseError,
    ManifestReadError,
    MissingVersionError,
    get_error_handler,
    log_parsing_error,
)
from .structured_logging import log_dependency_dropped, log_manifest_extracted
from .versions import parse_version_requirement

DEPENDENCIES_TABLE = "dependencies"
DEV_DEPENDENCIES_TABLE = "dev-dependencies"


def _validate_file_path(file_path: str) -> Path:
    """
    Validate a manifest path before reading it.

    Args:
        file_path: The file path to validate

    Returns:
        Path: Validated and resolved path object

    Raises:
        ManifestReadError: If the path is missing, not a file, too large or
            has an extension outside ``security.allowed_file_extensions``
    """
    if not file_path:
        raise ManifestReadError("Manifest path must be a non-empty string")

    try:
        path = Path(file_path).resolve()
    except (OSError, RuntimeError) as e:
        raise ManifestReadError(f"Invalid manifest path {file_path}") from e

    if not path.exists():
        raise ManifestReadError(f"Manifest does not exist: {path}")

    if not path.is_file():
        raise ManifestReadError(f"Manifest path is not a file: {path}")

    config = get_config()
    allowed_extensions = {ext.lower() for ext in config.security.allowed_file_extensions}
    if path.suffix.lower() not in allowed_extensions:
        raise ManifestReadError(f"File type not allowed: {path.name}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ManifestReadError(f"Cannot access manifest {path}") from e

    max_file_size = config.security.max_file_size_bytes
    if file_size > max_file_size:
        raise ManifestReadError(
            f"Manifest too large: {file_size} bytes (max: {max_file_size})"
        )

    return path


def _read_manifest(path: Path) -> str:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise ManifestReadError(f"Manifest {path} is not valid UTF-8") from e
    except OSError as e:
        raise ManifestReadError(f"Failed to read manifest {path}") from e


def _dependency_table(
    data: Dict[str, Any], table_name: str, manifest: str
) -> Dict[str, Any]:
    table = data.get(table_name)
    if table is None:
        return {}
    if not isinstance(table, dict):
        raise ManifestParseError(
            f"[{table_name}] in {manifest} must be a table, "
            f"got {type(table).__name__}"
        )
    return table


def _declared_version(name: str, value: Any, manifest: str) -> str:
    """
    Resolve the requirement of one dependency entry.

    ``serde = "1.0"`` declares the string itself;
    ``serde = { version = "1.0", features = [...] }`` declares the table's
    ``version`` key and every other key is ignored.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        version = value.get("version")
        if version is None:
            raise MissingVersionError(name, manifest)
        if not isinstance(version, str):
            raise MissingVersionError(
                name, manifest, f"'version' is a {type(version).__name__}"
            )
        return version
    raise MissingVersionError(
        name, manifest, f"unsupported declaration of type {type(value).__name__}"
    )


def transform_dependencies(
    table: Dict[str, Any],
    manifest: str,
    missing_version_policy: str = POLICY_ERROR,
    invalid_version_policy: str = POLICY_SKIP,
) -> List[Dependency]:
    """
    Turn one dependency table into Dependency records, in table order.

    Args:
        table: Mapping of crate name to declaration
        manifest: Manifest path, used in messages and as ``source_file``
        missing_version_policy: ``"error"`` raises MissingVersionError for
            entries without a version, ``"skip"`` drops them with a warning
        invalid_version_policy: ``"skip"`` silently drops entries whose
            version is not a valid requirement, ``"error"`` raises
            InvalidVersionRequirement

    Returns:
        List[Dependency]: Surviving dependencies
    """
    result = []

    for name, value in table.items():
        try:
            version = _declared_version(name, value, manifest)
        except MissingVersionError as e:
            if missing_version_policy != POLICY_SKIP:
                raise
            get_error_handler().warning(
                ErrorCategory.VALIDATION,
                f"Skipping dependency without version: {e}",
                "parsers",
                "transform_dependencies",
                details={"package_name": name, "file_path": Path(manifest).name},
            )
            continue

        try:
            parse_version_requirement(version)
        except InvalidVersionRequirement:
            if invalid_version_policy == POLICY_ERROR:
                raise
            log_dependency_dropped(
                manifest, name, version, "invalid version requirement"
            )
            continue

        result.append(Dependency(name=name, version=version, source_file=manifest))

    return result


def extract_manifest_dependencies(
    manifest_path: str,
    missing_version_policy: Optional[str] = None,
    invalid_version_policy: Optional[str] = None,
    error_callback: Optional[ErrorCallback] = None,
) -> ManifestDependencies:
    """
    Extract the regular and development dependencies of a Cargo manifest.

    Args:
        manifest_path: Path to the Cargo.toml file
        missing_version_policy: Overrides ``prefetch.missing_version_policy``
        invalid_version_policy: Overrides ``prefetch.invalid_version_policy``
        error_callback: Optional callback for parsing and validation errors

    Returns:
        ManifestDependencies: Dependencies in declaration order

    Raises:
        ManifestReadError: If the file cannot be read
        ManifestParseError: If the file is not valid TOML
        MissingVersionError: If an entry has no version and the policy is "error"
        InvalidVersionRequirement: If a version is invalid and the policy is "error"
    """
    error_handler = get_error_handler()
    if error_callback:
        error_handler.register_callback(error_callback, ErrorCategory.PARSING)
        error_handler.register_callback(error_callback, ErrorCategory.VALIDATION)

    config = get_config()
    missing_policy = missing_version_policy or config.prefetch.missing_version_policy
    invalid_policy = invalid_version_policy or config.prefetch.invalid_version_policy
    manifest = str(manifest_path)

    try:
        content = _read_manifest(_validate_file_path(manifest))

        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise ManifestParseError(f"Invalid TOML in {manifest}") from e

        dependencies = transform_dependencies(
            _dependency_table(data, DEPENDENCIES_TABLE, manifest),
            manifest,
            missing_policy,
            invalid_policy,
        )
        dev_dependencies = transform_dependencies(
            _dependency_table(data, DEV_DEPENDENCIES_TABLE, manifest),
            manifest,
            missing_policy,
            invalid_policy,
        )
    except ManifestReadError as e:
        error_handler.error(
            ErrorCategory.FILESYSTEM,
            str(e),
            "parsers",
            "extract_manifest_dependencies",
            exception=e,
            details={"file_path": Path(manifest).name},
        )
        raise
    except (ManifestParseError, MissingVersionError, InvalidVersionRequirement) as e:
        log_parsing_error(
            str(e),
            "parsers",
            "extract_manifest_dependencies",
            file_path=manifest,
            exception=e,
        )
        raise
    finally:
        if error_callback:
            error_handler.unregister_callback(error_callback, ErrorCategory.PARSING)
            error_handler.unregister_callback(
                error_callback, ErrorCategory.VALIDATION
            )

    log_manifest_extracted(manifest, len(dependencies), len(dev_dependencies))

    return ManifestDependencies(
        dependencies=tuple(dependencies),
        dev_dependencies=tuple(dev_dependencies),
        source_file=manifest,
    )
