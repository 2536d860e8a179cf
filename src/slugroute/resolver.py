"""Data resolution: entity metadata and record lookups.

The match and generation engines never touch storage directly. They talk to
a :class:`Resolver`, bound once when the :class:`~slugroute.router.Router`
is constructed. :class:`SQLiteResolver` is the bundled implementation,
backed by stdlib ``sqlite3``.

Filters have a single shape everywhere: :class:`QueryFilter` holds ``joins``
and ``where`` conditions. Conditions without an alias apply to the entity's
own table.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from slugroute.declarations import EntityDeclaration, RelationshipDeclaration
from slugroute.errors import ConfigurationError
from slugroute.slug import DEFAULT_EXTENDED_SCRIPTS, slugify

if TYPE_CHECKING:
    from slugroute.routing import Part

logger = logging.getLogger(__name__)

BASE_ALIAS = "t"

# Condition operator comparing the slug of a column with a LIKE pattern.
SLUG = "SLUG"
# SQL function registered on every connection the resolver wraps.
SLUG_FUNCTION = "slugroute_slug"


@dataclass(frozen=True, slots=True)
class Relationship:
    """A belongs-to link: ``source.foreign_key -> table.target_key``."""

    name: str
    table: str
    foreign_key: str
    target_key: str


@dataclass(frozen=True, slots=True)
class EntityDescriptor:
    """A resolved entity: the table behind a route and its primary key."""

    table: str
    primary: str
    model: str | None = None
    relationships: tuple[Relationship, ...] = ()

    def relationship(self, name: str) -> Relationship | None:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None


@dataclass(frozen=True, slots=True)
class Join:
    """``JOIN table AS alias ON alias.target_column = source_alias.source_column``."""

    table: str
    alias: str
    source_alias: str
    source_column: str
    target_column: str


@dataclass(frozen=True, slots=True)
class Condition:
    """``alias.column <operator> value``; operator is ``=``, ``LIKE`` or :data:`SLUG`."""

    column: str
    operator: str
    value: Any
    alias: str | None = None


@dataclass(frozen=True, slots=True)
class QueryFilter:
    """Composable join/filter fragment."""

    joins: tuple[Join, ...] = ()
    where: tuple[Condition, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.joins or self.where)

    def merge(self, *others: QueryFilter) -> QueryFilter:
        """Concatenate conditions; joins sharing an alias are kept once."""
        joins = list(self.joins)
        where = list(self.where)
        aliases = {j.alias for j in joins}
        for other in others:
            for join in other.joins:
                if join.alias not in aliases:
                    aliases.add(join.alias)
                    joins.append(join)
            where.extend(other.where)
        return QueryFilter(tuple(joins), tuple(where))


class Resolver(Protocol):
    """Capability the engines consume for entity metadata and lookups."""

    def parse_entity(
        self,
        descriptor: str | EntityDeclaration | EntityDescriptor,
        relationships: Mapping[str, str | RelationshipDeclaration] | None = None,
    ) -> EntityDescriptor: ...

    def get_primary(self, entity: EntityDescriptor) -> str: ...

    def fetch(
        self,
        entity: EntityDescriptor,
        id: Any = None,  # noqa: A002
        filters: QueryFilter | None = None,
    ) -> dict[str, Any] | None: ...

    def parse_relationship_for_match(
        self,
        entity: EntityDescriptor,
        field: Part,
        value: str,
    ) -> QueryFilter | None: ...

    def merge_query_filters(self, *filters: QueryFilter) -> QueryFilter: ...

    def resolve_relationship_for_generation(
        self,
        entity: EntityDescriptor,
        row_or_id: Mapping[str, Any] | Any,
        field: Part,
    ) -> Any | None: ...


def quote(name: str) -> str:
    """Quote an SQL identifier."""
    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True, slots=True)
class Select:
    """Single-row SELECT against an entity table.

    ``.sql`` and ``.params`` show exactly what will run.
    """

    table: str
    order_by: str
    filters: QueryFilter = field(default_factory=QueryFilter)

    @property
    def sql(self) -> str:
        parts = [f"SELECT {quote(BASE_ALIAS)}.* FROM {quote(self.table)} AS {quote(BASE_ALIAS)}"]
        for join in self.filters.joins:
            parts.append(
                f"JOIN {quote(join.table)} AS {quote(join.alias)} "
                f"ON {quote(join.alias)}.{quote(join.target_column)} = "
                f"{quote(join.source_alias)}.{quote(join.source_column)}"
            )
        if self.filters.where:
            clauses = " AND ".join(_clause(c) for c in self.filters.where)
            parts.append(f"WHERE {clauses}")
        parts.append(f"ORDER BY {quote(BASE_ALIAS)}.{quote(self.order_by)}")
        parts.append("LIMIT 1")
        return " ".join(parts)

    @property
    def params(self) -> tuple[Any, ...]:
        return tuple(c.value for c in self.filters.where)


# Operator -> SQL template around the qualified column.
_OPERATORS = {
    "=": "{column} = ?",
    "LIKE": "{column} LIKE ? ESCAPE '\\'",
    SLUG: f"{SLUG_FUNCTION}({{column}}) LIKE ? ESCAPE '\\'",
}


def _clause(condition: Condition) -> str:
    column = f"{quote(condition.alias or BASE_ALIAS)}.{quote(condition.column)}"
    return _OPERATORS[condition.operator].format(column=column)


class SQLiteResolver:
    """Resolver backed by an SQLite database.

    Parameters
    ----------
    database:
        A path (``":memory:"`` included) or an open ``sqlite3.Connection``.
    models:
        Named models mapped to their table, e.g. ``{"Post": "posts"}``.
    relationships:
        Extra relationships per table, e.g.
        ``{"posts": {"category": "categories"}}``. Anything not declared
        here or on the route is discovered from the table's foreign keys.
    extended_scripts:
        Character ranges kept when stored values are slugified for
        comparison. Must match the router's setting.
    """

    __slots__ = ("_conn", "_extended_scripts", "_foreign_keys", "_models", "_primaries", "_relationships")

    def __init__(
        self,
        database: str | sqlite3.Connection = ":memory:",
        *,
        models: Mapping[str, str] | None = None,
        relationships: Mapping[str, Mapping[str, str | RelationshipDeclaration | Mapping[str, Any]]] | None = None,
        extended_scripts: str = DEFAULT_EXTENDED_SCRIPTS,
    ) -> None:
        self._conn = database if isinstance(database, sqlite3.Connection) else sqlite3.connect(database)
        self._extended_scripts = extended_scripts
        self._conn.create_function(SLUG_FUNCTION, 1, self._slug, deterministic=True)
        self._models = dict(models or {})
        self._relationships = {table: dict(rels) for table, rels in (relationships or {}).items()}
        self._primaries: dict[str, str | None] = {}
        self._foreign_keys: dict[str, list[tuple[str, str, str | None]]] = {}

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def _slug(self, value: Any) -> str | None:
        if value is None:
            return None
        return slugify(value, extended_scripts=self._extended_scripts)

    # ------------------------------------------------------------------
    # Entity metadata
    # ------------------------------------------------------------------

    def parse_entity(
        self,
        descriptor: str | EntityDeclaration | EntityDescriptor,
        relationships: Mapping[str, str | RelationshipDeclaration] | None = None,
    ) -> EntityDescriptor:
        if isinstance(descriptor, EntityDescriptor):
            return descriptor

        if isinstance(descriptor, str):
            if descriptor in self._models:
                descriptor = EntityDeclaration(model=descriptor)
            else:
                descriptor = EntityDeclaration(table=descriptor)

        table = descriptor.table
        if not table and descriptor.model:
            table = self._models.get(descriptor.model)
            if table is None:
                msg = f"Model {descriptor.model!r} not found"
                raise ConfigurationError(msg)
        if not table:
            msg = "Entity must define a table or model"
            raise ConfigurationError(msg)
        if not self._table_exists(table):
            msg = f"Table {table!r} does not exist"
            raise ConfigurationError(msg)

        primary = descriptor.primary or self._primary_of(table)
        if not primary:
            msg = f"Table {table!r} does not have a primary key defined"
            raise ConfigurationError(msg)

        rels = tuple(
            self._declared_relationship(name, decl) for name, decl in (relationships or {}).items()
        )
        return EntityDescriptor(table=table, primary=primary, model=descriptor.model, relationships=rels)

    def get_primary(self, entity: EntityDescriptor) -> str:
        return entity.primary

    def _table_exists(self, table: str) -> bool:
        cursor = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?",
            (table,),
        )
        return cursor.fetchone() is not None

    def _primary_of(self, table: str) -> str | None:
        if table not in self._primaries:
            rows = self._conn.execute(f"PRAGMA table_info({quote(table)})").fetchall()
            # (cid, name, type, notnull, dflt_value, pk)
            keyed = sorted((row for row in rows if row[5]), key=lambda row: row[5])
            self._primaries[table] = keyed[0][1] if keyed else None
        return self._primaries[table]

    def _declared_relationship(
        self,
        name: str,
        decl: str | RelationshipDeclaration | Mapping[str, Any],
    ) -> Relationship:
        if isinstance(decl, str):
            decl = RelationshipDeclaration(table=decl)
        elif isinstance(decl, Mapping):
            decl = RelationshipDeclaration.model_validate(decl)
        target_key = decl.target_key or self._primary_of(decl.table)
        if not target_key:
            msg = f"Relationship {name!r}: table {decl.table!r} has no primary key"
            raise ConfigurationError(msg)
        return Relationship(
            name=name,
            table=decl.table,
            foreign_key=decl.foreign_key or f"{name}_id",
            target_key=target_key,
        )

    def _relationship(self, table: str, name: str, entity: EntityDescriptor | None = None) -> Relationship:
        """Find relationship *name* on *table*.

        Lookup order: resolver-level declarations, the route's entity
        declarations, then the table's foreign keys.
        """
        declared = self._relationships.get(table, {}).get(name)
        if declared is not None:
            return self._declared_relationship(name, declared)

        if entity is not None and entity.table == table:
            rel = entity.relationship(name)
            if rel is not None:
                return rel

        for column, target, target_column in self._foreign_keys_of(table):
            if name in (column, target) or column == f"{name}_id":
                target_key = target_column or self._primary_of(target)
                if target_key:
                    return Relationship(name, target, column, target_key)

        msg = f"Unknown relationship {name!r} on table {table!r}"
        raise ConfigurationError(msg)

    def _foreign_keys_of(self, table: str) -> list[tuple[str, str, str | None]]:
        if table not in self._foreign_keys:
            rows = self._conn.execute(f"PRAGMA foreign_key_list({quote(table)})").fetchall()
            # (id, seq, table, from, to, on_update, on_delete, match)
            self._foreign_keys[table] = [(row[3], row[2], row[4]) for row in rows]
        return self._foreign_keys[table]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def fetch(
        self,
        entity: EntityDescriptor,
        id: Any = None,  # noqa: A002
        filters: QueryFilter | None = None,
    ) -> dict[str, Any] | None:
        filters = filters or QueryFilter()
        if id is not None:
            filters = filters.merge(QueryFilter(where=(Condition(entity.primary, "=", id),)))
        for condition in filters.where:
            if condition.operator not in _OPERATORS:
                msg = f"Unsupported filter operator {condition.operator!r}"
                raise ConfigurationError(msg)

        query = Select(entity.table, entity.primary, filters)
        logger.debug("fetch %s %r", query.sql, query.params)
        cursor = self._conn.execute(query.sql, query.params)
        row = cursor.fetchone()
        if row is None:
            return None
        columns = [desc[0] for desc in cursor.description]
        return dict(zip(columns, row))

    def parse_relationship_for_match(
        self,
        entity: EntityDescriptor,
        field: Part,
        value: str,
    ) -> QueryFilter | None:
        """Translate a related field into joins plus a slug condition.

        *value* is a ``LIKE`` pattern matched against the slugified column. Each hop gets its own alias derived
        from the chain prefix, so fragments sharing a prefix merge cleanly.
        """
        if not field.relationships or not value:
            return None

        joins: list[Join] = []
        table = entity.table
        source_alias = BASE_ALIAS
        for depth, name in enumerate(field.relationships, start=1):
            rel = self._relationship(table, name, entity if depth == 1 else None)
            alias = "r_" + "__".join(field.relationships[:depth])
            joins.append(Join(rel.table, alias, source_alias, rel.foreign_key, rel.target_key))
            table, source_alias = rel.table, alias

        return QueryFilter(tuple(joins), (Condition(field.name, SLUG, value, source_alias),))

    def merge_query_filters(self, *filters: QueryFilter) -> QueryFilter:
        return QueryFilter().merge(*filters)

    def resolve_relationship_for_generation(
        self,
        entity: EntityDescriptor,
        row_or_id: Mapping[str, Any] | Any,
        field: Part,
    ) -> Any | None:
        """Walk ``field.relationships`` hop by hop from a row and read the field."""
        row = row_or_id if isinstance(row_or_id, Mapping) else self.fetch(entity, id=row_or_id)
        table = entity.table
        for depth, name in enumerate(field.relationships, start=1):
            if row is None:
                return None
            rel = self._relationship(table, name, entity if depth == 1 else None)
            key = row.get(rel.foreign_key)
            if key is None:
                return None
            target = EntityDescriptor(rel.table, self._primary_of(rel.table) or rel.target_key)
            row = self.fetch(target, filters=QueryFilter(where=(Condition(rel.target_key, "=", key),)))
            table = rel.table

        if row is None:
            return None
        return row.get(field.name)


__all__ = [
    "BASE_ALIAS",
    "Condition",
    "EntityDescriptor",
    "Join",
    "QueryFilter",
    "Relationship",
    "SLUG",
    "SLUG_FUNCTION",
    "Resolver",
    "SQLiteResolver",
    "Select",
]
