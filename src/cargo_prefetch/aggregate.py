"""Merging the dependencies of several manifests into one crate set."""

from typing import Iterable, Optional, Set, Tuple

from .dependency import ManifestDependencies
from .error_handling import ErrorCallback
from .parsers import extract_manifest_dependencies
from .structured_logging import log_crates_collected

# (name, version requirement) pairs; the pair is the uniqueness key, so one
# crate required at two different versions yields two entries.
CrateSet = Set[Tuple[str, str]]


def merge_dependencies(results: Iterable[ManifestDependencies]) -> CrateSet:
    """Union the regular and development dependencies of every result."""
    crates: CrateSet = set()
    for result in results:
        for dep in result.all():
            crates.add(dep.key)
    return crates


def collect_crates(
    manifest_paths: Iterable[str],
    missing_version_policy: Optional[str] = None,
    invalid_version_policy: Optional[str] = None,
    error_callback: Optional[ErrorCallback] = None,
) -> CrateSet:
    """
    Extract every manifest in turn and merge the results.

    The first manifest that fails aborts the whole collection; nothing is
    merged from a partial run.

    Args:
        manifest_paths: Paths to Cargo.toml files
        missing_version_policy: Passed through to the extractor
        invalid_version_policy: Passed through to the extractor
        error_callback: Passed through to the extractor

    Returns:
        CrateSet: Deduplicated (name, version) pairs

    Raises:
        ValueError: If no manifest paths were given
        PrefetchError: Whatever the extractor raises for the failing manifest
    """
    paths = list(manifest_paths)
    if not paths:
        raise ValueError("At least one manifest path is required")

    results = [
        extract_manifest_dependencies(
            path,
            missing_version_policy=missing_version_policy,
            invalid_version_policy=invalid_version_policy,
            error_callback=error_callback,
        )
        for path in paths
    ]

    crates = merge_dependencies(results)
    log_crates_collected(len(paths), len(crates))
    return crates
