"""Route declaration models and validation.

Declarations come from providers, configuration files and ``add_route``
calls. They are validated here, once, before any pattern is compiled.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from slugroute.errors import ConfigurationError


class EntityDeclaration(BaseModel):
    """Where a route's records live: a table, a named model, or both."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str | None = None
    model: str | None = None
    primary: str | None = None


class RelationshipDeclaration(BaseModel):
    """A belongs-to relationship declared on a route's entity."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    foreign_key: str | None = None
    target_key: str | None = None


class RouteOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    entity: str | EntityDeclaration | None = None
    relationships: dict[str, str | RelationshipDeclaration] = Field(default_factory=dict)
    case_sensitive: bool = True
    lowercase: bool = True
    tags: dict[str, str] = Field(default_factory=dict)


class RouteDeclaration(BaseModel):
    """``{pattern, controller, options}`` as consumed from providers/config."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str
    controller: str
    options: RouteOptions = Field(default_factory=RouteOptions)

    @field_validator("pattern", "controller")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return value


def validate_declaration(data: RouteDeclaration | Mapping[str, Any]) -> RouteDeclaration:
    """Validate one route declaration.

    Raises :class:`ConfigurationError` with an actionable message when the
    declaration is malformed.
    """
    if isinstance(data, RouteDeclaration):
        return data

    try:
        return RouteDeclaration.model_validate(data)
    except ValidationError as exc:
        pattern = data.get("pattern", "?") if isinstance(data, Mapping) else "?"
        controller = data.get("controller", "?") if isinstance(data, Mapping) else "?"
        problems = "\n".join(
            f"  Problem: {'.'.join(str(loc) for loc in err['loc']) or 'declaration'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(
            f"\n\nInvalid route declaration [{controller} {pattern}]\n"
            f"{problems}\n"
            f"  Fix:     Use {{'pattern': str, 'controller': str, 'options': {{...}}}}.\n"
            f"  Options: entity, relationships, case_sensitive, lowercase, tags.\n"
        ) from exc


def validate_declarations(
    items: Iterable[RouteDeclaration | Mapping[str, Any]],
) -> list[RouteDeclaration]:
    """Validate every item of a route list, in order."""
    return [validate_declaration(item) for item in items]
