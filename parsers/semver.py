"""
Semantic version validation and precedence (SemVer 2.0.0).

    MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]

MAJOR/MINOR/PATCH are non-negative integers without leading zeros.
PRERELEASE and BUILD are dot-separated, non-empty identifiers made of
ASCII alphanumerics and hyphens. Only the first "+" starts build metadata;
anything after a later "+" is kept as opaque build text. Build metadata
never affects ordering.
"""
import functools
import re
from typing import Any, Tuple

from core.exceptions import ParseError
from models.version import VersionComponents

_NUMBER = r"0|[1-9][0-9]*"
_IDENTIFIER = r"[0-9A-Za-z-]+"
_DOTTED = rf"{_IDENTIFIER}(?:\.{_IDENTIFIER})*"
_BUILD = rf"{_DOTTED}(?:\+[0-9A-Za-z.+-]*)?"

SEMVER_PATTERN = re.compile(
    rf"(?P<major>{_NUMBER})\.(?P<minor>{_NUMBER})\.(?P<patch>{_NUMBER})"
    rf"(?:-(?P<prerelease>{_DOTTED}))?"
    rf"(?:\+(?P<build>{_BUILD}))?",
    re.ASCII,
)


def is_valid(version: Any) -> bool:
    """True if version is a string matching the full semver grammar."""
    if not isinstance(version, str):
        return False
    return SEMVER_PATTERN.fullmatch(version) is not None


def parse(version: Any) -> VersionComponents:
    """
    Split a semver string into its components.

    Raises:
        ParseError: if the string is not a valid semantic version
    """
    match = SEMVER_PATTERN.fullmatch(version) if isinstance(version, str) else None
    if match is None:
        raise ParseError(f"Invalid semantic version: {version!r}", {"version": repr(version)})

    prerelease = match.group("prerelease")
    return VersionComponents(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=tuple(prerelease.split(".")) if prerelease else (),
        build=match.group("build"),
    )


def _compare_identifiers(left: str, right: str) -> int:
    left_numeric = left.isdigit()
    right_numeric = right.isdigit()

    if left_numeric and right_numeric:
        a, b = int(left), int(right)
    elif left_numeric:
        # Numeric identifiers always have lower precedence
        return -1
    elif right_numeric:
        return 1
    else:
        a, b = left, right

    return (a > b) - (a < b)


def _compare_prerelease(left: Tuple[str, ...], right: Tuple[str, ...]) -> int:
    # A release outranks any pre-release of the same core version
    if not left and not right:
        return 0
    if not left:
        return 1
    if not right:
        return -1

    for a, b in zip(left, right):
        result = _compare_identifiers(a, b)
        if result:
            return result

    # All shared identifiers equal: the shorter list is lesser
    return (len(left) > len(right)) - (len(left) < len(right))


def compare_components(left: VersionComponents, right: VersionComponents) -> int:
    """Compare already-parsed versions. Returns -1, 0 or 1."""
    left_core = (left.major, left.minor, left.patch)
    right_core = (right.major, right.minor, right.patch)
    if left_core != right_core:
        return 1 if left_core > right_core else -1
    return _compare_prerelease(left.prerelease, right.prerelease)


def compare(a: Any, b: Any) -> int:
    """
    Compare two semantic versions by precedence.

    Returns:
        1 if a > b, -1 if a < b, 0 if they have equal precedence

    Raises:
        ParseError: if either version is invalid; the message names both inputs
    """
    if not is_valid(a) or not is_valid(b):
        raise ParseError(
            f"Cannot compare versions {a!r} and {b!r}: invalid semantic version",
            {"left": repr(a), "right": repr(b)},
        )
    return compare_components(parse(a), parse(b))


def is_newer(a: Any, b: Any) -> bool:
    """True if a has strictly higher precedence than b."""
    return compare(a, b) > 0


sort_key = functools.cmp_to_key(compare)
