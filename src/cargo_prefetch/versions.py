"""
Cargo version requirement grammar.

A requirement is one or more comma-separated comparators, each an optional
operator (``^``, ``~``, ``=``, ``>``, ``>=``, ``<``, ``<=``) followed by a
full or partial version (``1``, ``1.2``, ``1.2.3-beta.1+build.5``) whose
trailing parts may be wildcards (``1.*``, ``1.2.x``). A lone ``*`` matches
everything and cannot be combined with other comparators. A bare version
such as ``1.0`` is a caret requirement.

The shape of every comparator is checked here; the normalized comparators
(wildcards spelled ``*``, build metadata removed since it never affects
matching) are then handed to :class:`semantic_version.SimpleSpec`.
"""

import re
from typing import List

from semantic_version import SimpleSpec

from .error_handling import InvalidVersionRequirement

_OPERATOR_SPACING = re.compile(r"^(\^|~|=|>=|<=|>|<)\s+")
_PART = r"0|[1-9][0-9]*|[*xX]"
_IDENTIFIERS = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"
_COMPARATOR = re.compile(
    r"^(?P<op>\^|~|=|>=|<=|>|<)?"
    rf"(?P<major>{_PART})"
    rf"(?:\.(?P<minor>{_PART})"
    rf"(?:\.(?P<patch>{_PART})"
    rf"(?:-(?P<pre>{_IDENTIFIERS}))?"
    rf"(?:\+(?P<build>{_IDENTIFIERS}))?"
    r")?)?$"
)
_WILDCARDS = ("*", "x", "X")


def _normalize_comparator(requirement: str, comparator: str, alone: bool) -> str:
    match = _COMPARATOR.match(comparator)
    if match is None:
        raise InvalidVersionRequirement(
            requirement, f"unexpected characters in {comparator!r}"
        )

    op = match.group("op") or ""
    parts = [
        part
        for part in (match.group("major"), match.group("minor"), match.group("patch"))
        if part is not None
    ]

    if parts[0] in _WILDCARDS:
        if op or len(parts) > 1 or not alone:
            raise InvalidVersionRequirement(
                requirement, "a '*' major version must be the only comparator"
            )
        return "*"

    wildcard_at = next(
        (index for index, part in enumerate(parts) if part in _WILDCARDS), None
    )
    if wildcard_at is not None:
        if any(part not in _WILDCARDS for part in parts[wildcard_at:]):
            raise InvalidVersionRequirement(
                requirement, f"version number after wildcard in {comparator!r}"
            )
        if match.group("pre") or match.group("build"):
            raise InvalidVersionRequirement(
                requirement, f"pre-release or build after wildcard in {comparator!r}"
            )

    normalized = op + ".".join("*" if part in _WILDCARDS else part for part in parts)
    if match.group("pre"):
        normalized += "-" + match.group("pre")
    return normalized


def _split_comparators(requirement: str) -> List[str]:
    raw_comparators = requirement.split(",")
    comparators = []
    for raw in raw_comparators:
        comparator = _OPERATOR_SPACING.sub(r"\1", raw.strip())
        if not comparator:
            raise InvalidVersionRequirement(requirement, "empty comparator")
        comparators.append(
            _normalize_comparator(
                requirement, comparator, alone=len(raw_comparators) == 1
            )
        )
    return comparators


def parse_version_requirement(requirement: str) -> SimpleSpec:
    """
    Parse a Cargo version requirement.

    Args:
        requirement: Requirement as written in a manifest, e.g. ``"1.0"``,
            ``"^0.4.2"`` or ``">= 1.2, < 1.5"``

    Returns:
        SimpleSpec: The normalized requirement

    Raises:
        InvalidVersionRequirement: If the string is not a valid requirement
    """
    if not isinstance(requirement, str):
        raise InvalidVersionRequirement(repr(requirement), "not a string")

    comparators = _split_comparators(requirement)
    try:
        return SimpleSpec(",".join(comparators))
    except ValueError as e:
        raise InvalidVersionRequirement(requirement, str(e)) from e


def is_valid_version_requirement(requirement: str) -> bool:
    """Return True if ``requirement`` is a syntactically valid Cargo requirement."""
    try:
        parse_version_requirement(requirement)
    except InvalidVersionRequirement:
        return False
    return True
