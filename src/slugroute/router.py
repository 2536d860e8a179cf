"""Router: owns the route table and dispatches match/generate calls.

The table is built lazily on first use from registered providers, the
configured routes and routes added with :meth:`Router.add_route`, then
held in the cache until it expires or :meth:`Router.invalidate` is called.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from slugroute.cache import MemoryCache
from slugroute.config import RouterConfig
from slugroute.declarations import RouteDeclaration, RouteOptions, validate_declaration, validate_declarations
from slugroute.errors import ConfigurationError, RoutingError
from slugroute.generation import GenerationEngine
from slugroute.matching import MatchEngine
from slugroute.routing import compile_pattern

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from slugroute.cache import Cache
    from slugroute.generation import GenerationInput
    from slugroute.resolver import EntityDescriptor, Resolver
    from slugroute.routing import Route

logger = logging.getLogger(__name__)


class TableState(Enum):
    UNLOADED = auto()
    LOADING = auto()
    LOADED = auto()


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful :meth:`Router.match`."""

    controller: str
    id: Any
    entity: EntityDescriptor | None
    tags: dict[str, str] = field(default_factory=dict)
    route: Route | None = field(default=None, repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class UrlGenerate:
    """Event sent to listeners before a URL is generated."""

    controller: str
    element: Any
    tags: dict[str, str]


class RouteProvider:
    """A source of route declarations, registered with :meth:`Router.register_provider`.

    Subclasses override whatever they need; the defaults contribute nothing
    and leave URLs untouched.
    """

    def get_routes(self) -> list[RouteDeclaration | Mapping[str, Any]]:
        return []

    def pre_match_url(self, url: str) -> str:
        return url

    def post_generate_url(self, url: str, options: Mapping[str, Any]) -> str:
        return url


def specificity(route: Route) -> tuple[int, tuple[int, ...]]:
    """Sort key: more segments first, then static before dynamic at the first difference."""
    return -len(route.segments), tuple(int(seg.is_dynamic) for seg in route.segments)


class RouteTable:
    """Immutable, specificity-ordered collection of compiled routes."""

    __slots__ = ("routes",)

    def __init__(self, routes: Iterable[Route]) -> None:
        routes = list(routes)
        seen: dict[tuple[str, int], Route] = {}
        for route in routes:
            other = seen.get(route.regex_key)
            if other is not None:
                msg = (
                    f"Duplicate route: {route.pattern!r} ({route.controller}) compiles to the "
                    f"same pattern as {other.pattern!r} ({other.controller})"
                )
                raise ConfigurationError(msg)
            seen[route.regex_key] = route
        # sorted() is stable: equally specific routes keep declaration order
        self.routes: tuple[Route, ...] = tuple(sorted(routes, key=specificity))

    def __iter__(self) -> Iterator[Route]:
        return iter(self.routes)

    def __len__(self) -> int:
        return len(self.routes)


class Router:
    """Match URLs to controllers and entity ids, and generate URLs back.

    Usage::

        router = Router(SQLiteResolver("app.db"))
        router.add_route("/blog/:category.slug/:title", "post", {"entity": "posts"})

        match = router.match("/blog/news/hello-world")
        url = router.generate("post", 42)

    Parameters
    ----------
    resolver:
        Data source used to resolve entities and slug text.
    config:
        Router configuration; statically configured routes are loaded
        after provider routes.
    cache:
        Result cache. Defaults to an in-process :class:`MemoryCache`.
    providers:
        Route providers, same as calling :meth:`register_provider`.
    namespace:
        Cache key prefix, for caches shared between routers.
    """

    def __init__(
        self,
        resolver: Resolver | None = None,
        *,
        config: RouterConfig | None = None,
        cache: Cache | None = None,
        providers: Iterable[RouteProvider] = (),
        namespace: str | None = None,
    ) -> None:
        self.resolver = resolver
        self.config = config or RouterConfig()
        self.cache: Cache = cache if cache is not None else MemoryCache()
        self.namespace = namespace or f"slugroute:{id(self):x}:"
        self.state = TableState.UNLOADED
        self.active: RouteMatch | None = None
        self._providers: list[RouteProvider] = list(providers)
        self._declarations: list[RouteDeclaration] = []
        self._pre_match_hooks: list[Callable[[str], str]] = []
        self._post_generate_hooks: list[Callable[[str, Mapping[str, Any]], str]] = []
        self._listeners: list[Callable[[UrlGenerate], None]] = []
        self._matcher = MatchEngine(resolver)
        self._generator = GenerationEngine(
            resolver,
            base_path=self.config.base_path,
            extended_scripts=self.config.extended_scripts,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_route(
        self,
        pattern: str,
        controller: str,
        options: RouteOptions | Mapping[str, Any] | None = None,
    ) -> Router:
        declaration = validate_declaration(
            {"pattern": pattern, "controller": controller, "options": options or {}}
        )
        self._declarations.append(declaration)
        self.invalidate()
        return self

    def add_routes(self, routes: Iterable[RouteDeclaration | Mapping[str, Any]]) -> Router:
        """Add routes in the ``{pattern, controller, options}`` format."""
        self._declarations.extend(validate_declarations(routes))
        self.invalidate()
        return self

    def register_provider(self, provider: RouteProvider) -> Router:
        self._providers.append(provider)
        self.invalidate()
        return self

    def add_pre_match_hook(self, hook: Callable[[str], str]) -> Router:
        self._pre_match_hooks.append(hook)
        return self

    def add_post_generate_hook(self, hook: Callable[[str, Mapping[str, Any]], str]) -> Router:
        self._post_generate_hooks.append(hook)
        return self

    def add_listener(self, listener: Callable[[UrlGenerate], None]) -> Router:
        self._listeners.append(listener)
        return self

    def clear_routes(self) -> Router:
        self._declarations.clear()
        self.invalidate()
        return self

    def invalidate(self) -> None:
        """Drop the route table and every cached result."""
        self.cache.delete_prefix(self.namespace)
        self.state = TableState.UNLOADED
        self.active = None

    # ------------------------------------------------------------------
    # Route table
    # ------------------------------------------------------------------

    @property
    def routes(self) -> list[Route]:
        """All routes in the order they are tried."""
        return list(self._table())

    def get_routes_for_controller(
        self,
        controller: str,
        tags: Mapping[str, str] | None = None,
    ) -> list[Route]:
        return [r for r in self._table() if r.controller == controller and r.matches_tags(tags)]

    def _table(self) -> RouteTable:
        if self.state is TableState.LOADING:
            msg = "Route table accessed while it is being built"
            raise RoutingError(msg)

        key = self.namespace + "table"
        table = self.cache.get(key)
        if table is None:
            table = self._build_table()
            self.cache.set(key, table, self.config.cache_ttl)
        return table

    def _build_table(self) -> RouteTable:
        self.state = TableState.LOADING
        try:
            declarations: list[RouteDeclaration] = []
            for provider in self._providers:
                declarations.extend(validate_declarations(provider.get_routes()))
            declarations.extend(self.config.routes)
            declarations.extend(self._declarations)
            table = RouteTable(self._compile(decl) for decl in declarations)
        except Exception:
            self.state = TableState.UNLOADED
            raise

        self.state = TableState.LOADED
        logger.info("Route table built: %d route(s)", len(table))
        return table

    def _compile(self, declaration: RouteDeclaration) -> Route:
        options = declaration.options
        entity = None
        if options.entity is not None:
            if self.resolver is None:
                msg = f"Route {declaration.pattern!r} declares an entity but no resolver is bound"
                raise ConfigurationError(msg)
            entity = self.resolver.parse_entity(options.entity, options.relationships)

        route = compile_pattern(declaration.pattern, declaration.controller, options, entity)
        if entity is None and route.fields:
            logger.warning(
                "Route %r has fields but no entity: it can only generate from attribute maps",
                route.pattern,
            )
        logger.debug("Compiled %r -> %s", route, route.regex.pattern)
        return route

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def match(self, url: str) -> RouteMatch | None:
        """Return the first route match for *url* in specificity order, or ``None``."""
        for provider in self._providers:
            url = provider.pre_match_url(url)
        for hook in self._pre_match_hooks:
            url = hook(url)
        path = self._strip_base(url)

        use_cache = self.config.cache_matches
        key = self.namespace + "match:" + hashlib.sha1(path.encode("utf-8")).hexdigest()
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("match cache hit for %r", path)
                return self._activate(cached)

        for route in self._table():
            result = self._matcher.match(path, route)
            if result is None:
                continue
            found = RouteMatch(
                controller=route.controller,
                id=result.identifier,
                entity=route.entity,
                tags=dict(route.tags),
                route=route,
            )
            logger.debug("%r matched %r (id=%r)", path, route, found.id)
            if use_cache:
                self.cache.set(key, found, self.config.cache_ttl)
            return self._activate(found)

        logger.debug("no route matches %r", path)
        return None

    def _activate(self, found: RouteMatch) -> RouteMatch:
        if self.config.track_active:
            self.active = found
        return found

    def _strip_base(self, url: str) -> str:
        base = self.config.base_path
        if base != "/" and (url == base or url.startswith(base + "/")):
            return url[len(base) :] or "/"
        return url

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(
        self,
        controller: str,
        element: GenerationInput = None,
        tags: Mapping[str, str] | None = None,
        *,
        slugify: bool = True,
        use_cache: bool = True,
    ) -> str | None:
        """Return the URL for *controller* and *element*, or ``None``.

        Candidate routes are those for *controller* whose tags satisfy
        *tags*; they are tried in table order and the first URL wins.
        """
        tags = dict(tags or {})
        event = UrlGenerate(controller=controller, element=element, tags=tags)
        for listener in self._listeners:
            listener(event)

        use_cache = use_cache and self.config.cache_generation
        key = self.namespace + "generate:" + _digest(controller, element, tags, slugify)
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("generate cache hit for %s", controller)
                return cached

        for route in self.get_routes_for_controller(controller, tags):
            url = self._generator.generate(route, element, slugify=slugify)
            if url is None:
                continue
            options = {"controller": controller, "element": element, "tags": tags, "route": route}
            for provider in self._providers:
                url = provider.post_generate_url(url, options)
            for hook in self._post_generate_hooks:
                url = hook(url, options)
            if use_cache:
                self.cache.set(key, url, self.config.cache_ttl)
            return url

        logger.debug("no route can generate %s for %r (tags=%r)", controller, element, tags)
        return None


def _digest(controller: str, element: Any, tags: Mapping[str, str], slugify: bool) -> str:
    if isinstance(element, Mapping):
        element = dict(element)
    payload = json.dumps([controller, element, dict(tags), slugify], sort_keys=True, default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()
