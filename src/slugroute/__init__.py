"""Slug-based pretty URL routing: match URLs to records, generate URLs back."""

__version__ = "0.1.0"

from slugroute.cache import MemoryCache
from slugroute.config import RouterConfig, load_config
from slugroute.declarations import RouteDeclaration, RouteOptions
from slugroute.errors import ConfigurationError, PatternError, RoutingError, SlugRouteError
from slugroute.resolver import EntityDescriptor, QueryFilter, Resolver, SQLiteResolver
from slugroute.router import RouteMatch, RouteProvider, Router
from slugroute.routing import Route, compile_pattern
from slugroute.slug import slugify

__all__ = [
    "ConfigurationError",
    "EntityDescriptor",
    "MemoryCache",
    "PatternError",
    "QueryFilter",
    "Resolver",
    "Route",
    "RouteDeclaration",
    "RouteMatch",
    "RouteOptions",
    "RouteProvider",
    "Router",
    "RouterConfig",
    "RoutingError",
    "SQLiteResolver",
    "SlugRouteError",
    "compile_pattern",
    "load_config",
    "slugify",
]
