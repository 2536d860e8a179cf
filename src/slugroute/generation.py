"""URL generation for a single compiled route.

Generation is a two-pass build. The first pass renders static text and
every value that can be read directly, leaving a :class:`Pending` marker
for each related field. The second pass resolves the markers through the
resolver, starting from the entity's main row.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from slugroute.errors import ConfigurationError
from slugroute.slug import DEFAULT_EXTENDED_SCRIPTS, slugify

if TYPE_CHECKING:
    from slugroute.resolver import EntityDescriptor, Resolver
    from slugroute.routing import Part, Route

logger = logging.getLogger(__name__)

GenerationInput = Mapping[str, Any] | int | str | None


@dataclass(frozen=True, slots=True)
class Pending:
    """A related field waiting for the second pass."""

    part: Part


class _Unresolved(Exception):
    """Internal signal: a required value could not be obtained."""


class GenerationEngine:
    """Build URLs from a route and an entity id or attribute map.

    Parameters
    ----------
    resolver:
        Data source for row fetches and relationship traversal.
    base_path:
        Prefix for every generated URL.
    extended_scripts:
        Extra character ranges kept by slug normalization.
    """

    __slots__ = ("base_path", "extended_scripts", "resolver")

    def __init__(
        self,
        resolver: Resolver | None = None,
        *,
        base_path: str = "/",
        extended_scripts: str = DEFAULT_EXTENDED_SCRIPTS,
    ) -> None:
        self.resolver = resolver
        self.base_path = "/" + base_path.strip("/") if base_path.strip("/") else ""
        self.extended_scripts = extended_scripts

    def generate(self, route: Route, element: GenerationInput = None, *, slugify: bool = True) -> str | None:
        """Return the URL for *element* through *route*, or ``None``.

        *element* is a raw identifier, an attribute mapping, or ``None``.
        """
        entity = route.entity
        primary = entity.primary if entity is not None else None
        if isinstance(element, Mapping):
            attributes: Mapping[str, Any] = element
            identifier = element.get(primary) if primary else None
        else:
            attributes = {}
            identifier = element
        rows: dict[tuple[str, Any], dict[str, Any] | None] = {}

        try:
            # Pass 1: literals and directly available values.
            built: list[list[str | Pending]] = []
            for segment in route.segments:
                if not segment.is_dynamic:
                    built.append([segment.value])
                    continue
                pieces: list[str | Pending] = []
                for part in segment.parts:
                    if not part.is_field:
                        pieces.append(part.value)
                    elif primary is not None and part.name == primary and identifier is not None:
                        pieces.append(self._render(identifier, part, route, slugify))
                    elif part.name in attributes:
                        pieces.append(self._render(attributes[part.name], part, route, slugify))
                    elif part.is_related:
                        pieces.append(Pending(part))
                    else:
                        row = self._main_row(route, identifier, rows)
                        pieces.append(self._render(row.get(part.name), part, route, slugify))
                built.append(pieces)

            # Pass 2: related values.
            segments: list[str] = []
            for pieces in built:
                rendered: list[str] = []
                for piece in pieces:
                    if isinstance(piece, Pending):
                        piece = self._resolve_pending(route, piece, identifier, attributes, rows, slugify)
                    rendered.append(piece)
                segments.append("-".join(rendered))
        except _Unresolved as exc:
            logger.debug("%r: cannot generate for %r: %s", route, element, exc)
            return None

        return self.base_path + "/" + "/".join(segments)

    def _render(self, value: Any, part: Part, route: Route, use_slug: bool) -> str:
        if value is None:
            raise _Unresolved(f"no value for field {part.name!r}")
        if use_slug:
            text = slugify(value, lowercase=route.lowercase, extended_scripts=self.extended_scripts)
        else:
            text = str(value)
        if not text:
            raise _Unresolved(f"field {part.name!r} renders empty")
        return text + part.suffix

    def _require(self, route: Route) -> tuple[EntityDescriptor, Resolver]:
        if route.entity is None:
            raise _Unresolved("route has no entity to read field values from")
        if self.resolver is None:
            msg = f"Route {route.pattern!r} needs a resolver to read field values"
            raise ConfigurationError(msg)
        return route.entity, self.resolver

    def _main_row(
        self,
        route: Route,
        identifier: Any,
        rows: dict[tuple[str, Any], dict[str, Any] | None],
    ) -> dict[str, Any]:
        """Fetch the entity row, memoized per call by ``(table, id)``."""
        entity, resolver = self._require(route)
        if identifier is None:
            raise _Unresolved("no identifier to fetch the main row")
        key = (entity.table, identifier)
        if key not in rows:
            rows[key] = resolver.fetch(entity, id=identifier)
        row = rows[key]
        if row is None:
            raise _Unresolved(f"no {entity.table} row with id {identifier!r}")
        return row

    def _resolve_pending(
        self,
        route: Route,
        pending: Pending,
        identifier: Any,
        attributes: Mapping[str, Any],
        rows: dict[tuple[str, Any], dict[str, Any] | None],
        use_slug: bool,
    ) -> str:
        entity, resolver = self._require(route)
        if identifier is not None:
            row: Mapping[str, Any] = self._main_row(route, identifier, rows)
        elif attributes:
            row = attributes
        else:
            raise _Unresolved("related field needs a main row")

        value = resolver.resolve_relationship_for_generation(entity, row, pending.part)
        return self._render(value, pending.part, route, use_slug)
