"""Router configuration.

``RouterConfig`` is a frozen pydantic model: immutable after creation and
validated once. Load it from a mapping, or from a JSON or TOML file::

    config = load_config("routes.toml")
    router = Router(resolver, config=config)
"""

from __future__ import annotations

import json
import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from slugroute.declarations import RouteDeclaration
from slugroute.errors import ConfigurationError
from slugroute.slug import DEFAULT_EXTENDED_SCRIPTS

logger = logging.getLogger(__name__)


class RouterConfig(BaseModel):
    """Router configuration. All fields have defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # URLs
    base_path: str = "/"
    extended_scripts: str = DEFAULT_EXTENDED_SCRIPTS

    # Cache
    cache_ttl: float = Field(default=3600.0, ge=0)
    cache_matches: bool = True
    cache_generation: bool = True

    # Remember the last successful match as ``router.active``
    track_active: bool = True

    # Statically configured routes
    routes: tuple[RouteDeclaration, ...] = ()

    # Named models mapped to tables, for the bundled SQLite resolver
    models: dict[str, str] = Field(default_factory=dict)

    @field_validator("base_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return "/" + value.strip().strip("/")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RouterConfig:
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            msg = f"Invalid router configuration:\n{exc}"
            raise ConfigurationError(msg) from exc


def load_config(path: str | Path) -> RouterConfig:
    """Read a ``.json`` or ``.toml`` configuration file."""
    file = Path(path)
    if not file.exists():
        msg = f"Configuration file {str(file)!r} not found"
        raise ConfigurationError(msg)

    suffix = file.suffix.lower()
    if suffix == ".json":
        data = json.loads(file.read_text(encoding="utf-8"))
    elif suffix == ".toml":
        with file.open("rb") as fh:
            data = tomllib.load(fh)
    else:
        msg = f"Unsupported configuration format {suffix!r}; use .json or .toml"
        raise ConfigurationError(msg)

    config = RouterConfig.from_mapping(data)
    logger.debug("Loaded %d route(s) from %s", len(config.routes), file)
    return config
