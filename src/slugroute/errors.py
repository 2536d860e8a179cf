"""slugroute exception hierarchy.

Configuration problems are fatal and raised immediately. Ordinary misses
(no route, no record) are never exceptions: they come back as ``None``.
"""

from __future__ import annotations


class SlugRouteError(Exception):
    """Base for all slugroute-specific errors."""


class ConfigurationError(SlugRouteError):
    """Raised when routes, entities or the resolver are misconfigured.

    Typically raised while the route table is being built.
    """


class PatternError(ConfigurationError):
    """Raised when a route pattern cannot be compiled."""

    def __init__(self, pattern: str, problem: str) -> None:
        self.pattern = pattern
        self.problem = problem
        super().__init__(f"Invalid route pattern {pattern!r}: {problem}")


class RoutingError(SlugRouteError):
    """Raised when the router is used in an invalid state."""
