"""Route pattern compilation.

A pattern such as ``/blog/:category.slug/:title-:id`` is compiled once into
an ordered tuple of :class:`Segment` objects and an anchored regex.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from slugroute.declarations import RouteOptions
from slugroute.errors import PatternError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from slugroute.resolver import EntityDescriptor

# Delimiter-safe stand-ins for the escaped markers \: and \.
_ESC_COLON = "\x00"
_ESC_DOT = "\x01"

FIELD_REGEX = r"([^/]+)"


@dataclass(frozen=True, slots=True)
class Part:
    """One dash-separated piece of a dynamic segment.

    Static:  ``post``          (kind="static", value="post")
    Field:   ``:title``        (kind="field", name="title")
    Related: ``:category.slug`` (kind="field", name="slug", relationships=("category",))
    Suffix:  ``:name\\.json``   (kind="field", name="name", suffix=".json")
    """

    kind: Literal["static", "field"]
    value: str = ""
    name: str = ""
    relationships: tuple[str, ...] = ()
    suffix: str = ""

    @property
    def is_field(self) -> bool:
        return self.kind == "field"

    @property
    def is_related(self) -> bool:
        return bool(self.relationships)

    @property
    def regex(self) -> str:
        if self.is_field:
            return FIELD_REGEX + re.escape(self.suffix)
        return re.escape(self.value)


@dataclass(frozen=True, slots=True)
class Segment:
    """One ``/``-delimited unit of a route pattern."""

    kind: Literal["static", "dynamic"]
    value: str
    parts: tuple[Part, ...] = ()

    @property
    def is_dynamic(self) -> bool:
        return self.kind == "dynamic"

    @property
    def fields(self) -> tuple[Part, ...]:
        return tuple(p for p in self.parts if p.is_field)

    @property
    def regex(self) -> str:
        if self.is_dynamic:
            return "-".join(p.regex for p in self.parts)
        return re.escape(self.value)


class Route:
    """A compiled mapping from a URL pattern to a controller."""

    __slots__ = ("controller", "entity", "options", "pattern", "regex", "segments")

    def __init__(
        self,
        pattern: str,
        controller: str,
        options: RouteOptions | None = None,
        entity: EntityDescriptor | None = None,
    ) -> None:
        self.pattern = pattern
        self.controller = controller
        self.options = options or RouteOptions()
        self.entity = entity
        self.segments = parse_pattern(pattern)
        self.regex = _compile_regex(self.segments, case_sensitive=self.options.case_sensitive)

    @property
    def case_sensitive(self) -> bool:
        return self.options.case_sensitive

    @property
    def lowercase(self) -> bool:
        return self.options.lowercase

    @property
    def tags(self) -> dict[str, str]:
        return self.options.tags

    @property
    def regex_key(self) -> tuple[str, int]:
        """Identity of the compiled regex, used for duplicate detection."""
        return self.regex.pattern, self.regex.flags

    @property
    def fields(self) -> list[Part]:
        return [part for seg in self.segments for part in seg.fields]

    @property
    def relationships(self) -> list[tuple[str, ...]]:
        """Distinct relationship chains used by this route, in order."""
        chains: list[tuple[str, ...]] = []
        for part in self.fields:
            if part.relationships and part.relationships not in chains:
                chains.append(part.relationships)
        return chains

    def matches_tags(self, tags: Mapping[str, str] | None) -> bool:
        """Return ``True`` if every requested tag is set to the same value here."""
        if not tags:
            return True
        return all(key in self.tags and self.tags[key] == value for key, value in tags.items())

    def __repr__(self) -> str:
        return f"Route({self.pattern!r}, {self.controller!r})"


def compile_pattern(
    pattern: str,
    controller: str,
    options: RouteOptions | None = None,
    entity: EntityDescriptor | None = None,
) -> Route:
    """Compile *pattern* into a :class:`Route`. Raises :class:`PatternError`."""
    return Route(pattern, controller, options, entity)


def parse_pattern(pattern: str) -> tuple[Segment, ...]:
    """Parse a route pattern string into segments.

    Examples::

        "/pages"            -> (Segment("static", "pages"),)
        "/pages/:name"      -> (Segment("static", "pages"), Segment("dynamic", ":name", ...))
        "/people/:first-:last"
                            -> second segment has two field parts
    """
    segments: list[Segment] = []
    for raw in pattern.strip().strip("/").split("/"):
        if not raw:
            continue
        part = _protect(raw, pattern)
        if ":" not in part:
            segments.append(Segment("static", _restore(part)))
            continue

        parts = tuple(
            _parse_field(sub[1:], pattern) if sub.startswith(":") else Part("static", value=_restore(sub))
            for sub in part.split("-")
        )
        if not any(p.is_field for p in parts):
            segments.append(Segment("static", _restore(part)))
            continue
        segments.append(Segment("dynamic", raw, parts))
    return tuple(segments)


def _protect(raw: str, pattern: str) -> str:
    """Swap escaped markers for stand-ins so they survive splitting."""
    out: list[str] = []
    chars = iter(raw)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        escaped = next(chars, None)
        if escaped is None:
            raise PatternError(pattern, "unterminated escape sequence")
        if escaped == ":":
            out.append(_ESC_COLON)
        elif escaped == ".":
            out.append(_ESC_DOT)
        else:
            raise PatternError(pattern, f"unsupported escape sequence \\{escaped}")
    return "".join(out)


def _restore(text: str) -> str:
    return text.replace(_ESC_COLON, ":").replace(_ESC_DOT, ".")


def _parse_field(text: str, pattern: str) -> Part:
    suffix = ""
    if _ESC_DOT in text:
        index = text.index(_ESC_DOT)
        text, raw_suffix = text[:index], text[index:]
        if "." in raw_suffix:
            raise PatternError(pattern, "a literal suffix must come after the field name")
        suffix = _restore(raw_suffix)

    if _ESC_COLON in text:
        raise PatternError(pattern, "escaped ':' is only allowed in a literal suffix")

    *relationships, name = text.split(".")
    if not name:
        raise PatternError(pattern, "field name is empty")
    if any(not rel for rel in relationships):
        raise PatternError(pattern, "relationship name is empty")
    if ":" in text:
        raise PatternError(pattern, f"unexpected ':' in field {text!r}")

    return Part("field", name=name, relationships=tuple(relationships), suffix=suffix)


def _compile_regex(segments: tuple[Segment, ...], *, case_sensitive: bool) -> re.Pattern[str]:
    """Anchor the joined segment regexes; trailing ``/...`` is allowed."""
    body = "/".join(seg.regex for seg in segments)
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(f"^/{body}(/.*)?$", flags)
