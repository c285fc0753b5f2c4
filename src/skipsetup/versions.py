"""Version range parsing and intersection.

Ranges are reduced to a single interval (optional lower and upper bound)
plus a set of excluded points. That is enough to decide whether two plugin
constraints can both be satisfied. Unions (``||``) are rejected.

Accepted syntax, comma or whitespace separated:

- comparators: ``>``, ``>=``, ``<``, ``<=``, ``==``, ``=``, ``!=``
- bare versions (exact match)
- wildcards: ``*``, ``x``, ``1.x``, ``1.2.*``, ``==1.*``
- npm caret and tilde: ``^1.2.3``, ``~1.2.3``
- PEP 440 compatible release: ``~=1.4.2``
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from packaging.version import InvalidVersion, Version

from skipsetup.errors import InvalidRequirement

RangeStyle = Literal["node", "python"]

_TOKEN_RE = re.compile(r"(~=|==|!=|>=|<=|>|<|=|\^|~)?\s*([0-9xX*][0-9A-Za-z.*+\-]*)")
_WILDCARDS = {"x", "X", "*"}
_ANY = {"", "*", "x", "X", "latest"}


@dataclass(frozen=True)
class Bound:
    version: Version
    inclusive: bool


@dataclass(frozen=True)
class VersionRange:
    lower: Bound | None = None
    upper: Bound | None = None
    excluded: frozenset[Version] = field(default_factory=frozenset)

    def intersect(self, other: VersionRange) -> VersionRange:
        return VersionRange(
            lower=_tighter_lower(self.lower, other.lower),
            upper=_tighter_upper(self.upper, other.upper),
            excluded=self.excluded | other.excluded,
        )

    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        if self.lower.version > self.upper.version:
            return True
        if self.lower.version == self.upper.version:
            if not (self.lower.inclusive and self.upper.inclusive):
                return True
            return self.lower.version in self.excluded
        return False

    def is_any(self) -> bool:
        return self.lower is None and self.upper is None and not self.excluded

    def contains(self, version: Version | str) -> bool:
        v = version if isinstance(version, Version) else Version(version)
        if v in self.excluded:
            return False
        if self.lower is not None:
            if v < self.lower.version or (v == self.lower.version and not self.lower.inclusive):
                return False
        if self.upper is not None:
            if v > self.upper.version or (v == self.upper.version and not self.upper.inclusive):
                return False
        return True

    def render(self, style: RangeStyle = "python") -> str:
        """Normalized text form; empty string means any version."""
        parts: list[str] = []
        lower, upper = self.lower, self.upper
        if lower is not None and upper is not None and lower.version == upper.version:
            parts.append(f"=={lower.version}" if style == "python" else str(lower.version))
        else:
            if lower is not None:
                parts.append(f"{'>=' if lower.inclusive else '>'}{lower.version}")
            if upper is not None:
                parts.append(f"{'<=' if upper.inclusive else '<'}{upper.version}")
        if style == "python":
            # npm has no plain exclusion operator; exclusions only render for python
            parts.extend(f"!={v}" for v in sorted(self.excluded))
            return ",".join(parts)
        return " ".join(parts)


def parse_range(text: str | None) -> VersionRange:
    """Parse a constraint string into a VersionRange."""
    if text is None or text.strip() in _ANY:
        return VersionRange()
    value = text.strip()
    if "||" in value:
        raise InvalidRequirement(f"Version unions are not supported: {text!r}")

    result = VersionRange()
    pos = 0
    normalized = value.replace(",", " ")
    while pos < len(normalized):
        if normalized[pos].isspace():
            pos += 1
            continue
        match = _TOKEN_RE.match(normalized, pos)
        if match is None:
            raise InvalidRequirement(f"Cannot parse version range {text!r}")
        result = result.intersect(_parse_constraint(match.group(1) or "", match.group(2), text))
        pos = match.end()
    return result


def _parse_constraint(op: str, raw: str, source: str) -> VersionRange:
    pieces = raw.split(".")
    if any(p in _WILDCARDS for p in pieces):
        return _wildcard(op, pieces, source)

    version = _version(raw, source)
    release = list(version.release)

    if op in ("", "=", "=="):
        return VersionRange(Bound(version, True), Bound(version, True))
    if op == "!=":
        return VersionRange(excluded=frozenset({version}))
    if op == ">":
        return VersionRange(lower=Bound(version, False))
    if op == ">=":
        return VersionRange(lower=Bound(version, True))
    if op == "<":
        return VersionRange(upper=Bound(version, False))
    if op == "<=":
        return VersionRange(upper=Bound(version, True))
    if op == "^":
        return VersionRange(Bound(version, True), Bound(_caret_ceiling(release), False))
    if op == "~":
        return VersionRange(Bound(version, True), Bound(_tilde_ceiling(release), False))
    if op == "~=":
        if len(release) < 2:
            raise InvalidRequirement(f"~= needs at least two release segments: {source!r}")
        head = release[:-1]
        head[-1] += 1
        return VersionRange(Bound(version, True), Bound(Version(".".join(map(str, head))), False))
    raise InvalidRequirement(f"Unsupported operator {op!r} in {source!r}")


def _wildcard(op: str, pieces: list[str], source: str) -> VersionRange:
    prefix: list[int] = []
    for piece in pieces:
        if piece in _WILDCARDS:
            break
        if not piece.isdigit():
            raise InvalidRequirement(f"Cannot parse version range {source!r}")
        prefix.append(int(piece))
    if op not in ("", "=", "==", "^", "~"):
        raise InvalidRequirement(f"Wildcards only combine with equality, ^ or ~: {source!r}")
    if not prefix:
        return VersionRange()
    floor = Version(".".join(map(str, prefix)))
    if op == "^":
        ceiling = _caret_ceiling(prefix)
    elif op == "~":
        ceiling = _tilde_ceiling(prefix)
    else:
        ceiling = Version(".".join(map(str, prefix[:-1] + [prefix[-1] + 1])))
    return VersionRange(Bound(floor, True), Bound(ceiling, False))


def _caret_ceiling(release: list[int]) -> Version:
    """Bump the leftmost non-zero part; parts not given count as wildcards."""
    major, minor, patch = (release + [0, 0, 0])[:3]
    if major > 0 or len(release) == 1:
        return Version(f"{major + 1}.0.0")
    if minor > 0 or len(release) == 2:
        return Version(f"0.{minor + 1}.0")
    return Version(f"0.0.{patch + 1}")


def _tilde_ceiling(release: list[int]) -> Version:
    if len(release) >= 2:
        return Version(f"{release[0]}.{release[1] + 1}.0")
    return Version(f"{release[0] + 1}.0.0")


def _version(raw: str, source: str) -> Version:
    try:
        return Version(raw)
    except InvalidVersion:
        raise InvalidRequirement(f"Invalid version {raw!r} in {source!r}") from None


def _tighter_lower(a: Bound | None, b: Bound | None) -> Bound | None:
    if a is None:
        return b
    if b is None:
        return a
    if a.version != b.version:
        return a if a.version > b.version else b
    return a if not a.inclusive else b


def _tighter_upper(a: Bound | None, b: Bound | None) -> Bound | None:
    if a is None:
        return b
    if b is None:
        return a
    if a.version != b.version:
        return a if a.version < b.version else b
    return a if not a.inclusive else b
