"""URL matching against a single compiled route.

Matching recovers an entity identifier from a URL. Numeric ids are read
straight from the path; slug text is resolved through the resolver, trying
every way of splitting a dash-joined segment between its fields.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from slugroute.errors import ConfigurationError
from slugroute.resolver import SLUG, Condition, QueryFilter

if TYPE_CHECKING:
    from collections.abc import Iterator

    from slugroute.resolver import EntityDescriptor, Resolver
    from slugroute.routing import Part, Route, Segment

logger = logging.getLogger(__name__)

Assignment = list[tuple["Part", str]]


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Identifier recovered from a URL. ``None`` for fully static routes."""

    identifier: Any = None


def split_path(url: str) -> list[str]:
    """Split a URL path into its non-empty segments."""
    return [part for part in url.strip().strip("/").split("/") if part]


def compositions(words: int, fields: int) -> list[tuple[int, ...]]:
    """Every way to split *words* into *fields* ordered, non-empty groups.

    The first field's word count goes from 1 upwards before recursing on the
    rest, which fixes the trial order::

        compositions(3, 2) -> [(1, 2), (2, 1)]
    """
    if fields <= 0 or words < fields:
        return []
    if fields == 1:
        return [(words,)]

    result: list[tuple[int, ...]] = []
    for first in range(1, words - fields + 2):
        for rest in compositions(words - first, fields - 1):
            result.append((first, *rest))
    return result


def segment_candidates(segment: Segment, text: str, *, case_sensitive: bool = True) -> Iterator[Assignment]:
    """Yield ``[(field_part, value), ...]`` for each plausible split of *text*.

    Static tokens take exactly one word and must equal it. A field with a
    literal suffix must end with it; the suffix is stripped from the value.
    """
    words = text.split("-")
    statics = len(segment.parts) - len(segment.fields)
    for counts in compositions(len(words) - statics, len(segment.fields)):
        assignment = _assign(segment.parts, words, counts, case_sensitive)
        if assignment is not None:
            yield assignment


def _assign(
    parts: tuple[Part, ...],
    words: list[str],
    counts: tuple[int, ...],
    case_sensitive: bool,
) -> Assignment | None:
    assignment: Assignment = []
    remaining = iter(counts)
    index = 0
    for part in parts:
        if not part.is_field:
            if not _same(words[index], part.value, case_sensitive):
                return None
            index += 1
            continue

        count = next(remaining)
        value = "-".join(words[index : index + count])
        index += count
        if part.suffix:
            if not _same(value[-len(part.suffix) :], part.suffix, case_sensitive):
                return None
            value = value[: -len(part.suffix)]
        if not value:
            return None
        assignment.append((part, value))
    return assignment


def extract_id(segment: Segment, text: str, primary: str, *, case_sensitive: bool = True) -> int | None:
    """Read a numeric primary key straight out of *text*, if the template allows it."""
    if not any(p.is_field and p.name == primary and not p.is_related for p in segment.parts):
        return None

    pieces: list[str] = []
    captured = False
    for part in segment.parts:
        if not part.is_field:
            pieces.append(re.escape(part.value))
        elif not captured and part.name == primary and not part.is_related:
            pieces.append(r"(\d+)" + re.escape(part.suffix))
            captured = True
        else:
            pieces.append(r"[^/]+?" + re.escape(part.suffix))

    flags = 0 if case_sensitive else re.IGNORECASE
    m = re.fullmatch("-".join(pieces), text, flags)
    if m is None:
        return None
    return int(m.group(1))


def like_pattern(value: str) -> str:
    """Turn slug words into a ``LIKE`` pattern: ``John-Paul`` -> ``john%paul``.

    Words are lowercased to compare with slugified columns, and ``\\``,
    ``%`` and ``_`` inside a word are escaped so URL text is never a wildcard.
    """
    return "%".join(_escape_like(word.lower()) for word in value.split("-"))


def _escape_like(word: str) -> str:
    return word.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _same(a: str, b: str, case_sensitive: bool) -> bool:
    return a == b if case_sensitive else a.casefold() == b.casefold()


class MatchEngine:
    """Match URLs against one route at a time."""

    __slots__ = ("resolver",)

    def __init__(self, resolver: Resolver | None = None) -> None:
        self.resolver = resolver

    def match(self, url: str, route: Route) -> MatchResult | None:
        """Return the identifier *url* points to through *route*, or ``None``.

        Raises :class:`ConfigurationError` when the route needs data
        resolution but has no entity, or no resolver is bound.
        """
        parts = split_path(url)
        if len(parts) < len(route.segments):
            return None
        if route.regex.match("/" + "/".join(parts)) is None:
            return None

        for segment, text in zip(route.segments, parts):
            if not segment.is_dynamic and not _same(text, segment.value, route.case_sensitive):
                return None

        dynamic = [(seg, text) for seg, text in zip(route.segments, parts) if seg.is_dynamic]
        if not dynamic:
            return MatchResult()

        entity = route.entity
        if entity is None:
            msg = f"Route {route.pattern!r} has dynamic segments but no entity"
            raise ConfigurationError(msg)
        resolver = self.resolver
        if resolver is None:
            msg = f"Route {route.pattern!r} needs a resolver to match dynamic segments"
            raise ConfigurationError(msg)

        primary = resolver.get_primary(entity)
        related: list[tuple[Segment, str]] = []
        pending: list[tuple[Segment, str]] = []
        for segment, text in dynamic:
            identifier = extract_id(segment, text, primary, case_sensitive=route.case_sensitive)
            if identifier is not None:
                return MatchResult(identifier)

            fields = segment.fields
            if len(fields) == 1 and fields[0].is_related:
                related.append((segment, text))
            else:
                pending.append((segment, text))

        fragments: list[QueryFilter] = []
        for segment, text in related:
            assignment = next(segment_candidates(segment, text, case_sensitive=route.case_sensitive), None)
            if assignment is None:
                return None
            fragment = self._filter_for(resolver, entity, assignment)
            if fragment is None:
                return None
            fragments.append(fragment)
        constraints = resolver.merge_query_filters(*fragments)

        if not pending:
            row = resolver.fetch(entity, filters=constraints)
            return MatchResult(row[primary]) if row is not None else None

        row = None
        for segment, text in pending:
            found = self._resolve_segment(resolver, entity, segment, text, constraints, route.case_sensitive)
            if found is None:
                logger.debug("%r: segment %r did not resolve", route, text)
                return None
            row, constraints = found
        return MatchResult(row[primary])

    def _resolve_segment(
        self,
        resolver: Resolver,
        entity: EntityDescriptor,
        segment: Segment,
        text: str,
        constraints: QueryFilter,
        case_sensitive: bool,
    ) -> tuple[dict[str, Any], QueryFilter] | None:
        """Try each split of *text* in order; the first one with a record wins."""
        for assignment in segment_candidates(segment, text, case_sensitive=case_sensitive):
            fragment = self._filter_for(resolver, entity, assignment)
            if fragment is None:
                continue
            merged = resolver.merge_query_filters(constraints, fragment)
            row = resolver.fetch(entity, filters=merged)
            if row is not None:
                return row, merged
        return None

    def _filter_for(
        self,
        resolver: Resolver,
        entity: EntityDescriptor,
        assignment: Assignment,
    ) -> QueryFilter | None:
        fragments: list[QueryFilter] = []
        for part, value in assignment:
            pattern = like_pattern(value)
            if part.is_related:
                fragment = resolver.parse_relationship_for_match(entity, part, pattern)
                if fragment is None:
                    return None
            else:
                fragment = QueryFilter(where=(Condition(part.name, SLUG, pattern),))
            fragments.append(fragment)
        return resolver.merge_query_filters(*fragments)
