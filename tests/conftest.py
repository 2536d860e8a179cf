"""Shared fixtures: a small blog database and a recording resolver."""

from __future__ import annotations

import sqlite3
from typing import Any

import pytest

from slugroute.resolver import SQLiteResolver

SCHEMA = """
CREATE TABLE categories (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL,
    parent_id INTEGER REFERENCES categories(id)
);
CREATE TABLE authors (
    id INTEGER PRIMARY KEY,
    first TEXT NOT NULL,
    last TEXT NOT NULL
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    category_id INTEGER REFERENCES categories(id),
    author_id INTEGER REFERENCES authors(id)
);
CREATE TABLE reports (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE logs (
    message TEXT
);

INSERT INTO categories (id, name, slug, parent_id) VALUES
    (1, 'News', 'news', NULL),
    (2, 'Tech News', 'tech-news', 1);
INSERT INTO authors (id, first, last) VALUES
    (1, 'John Paul', 'Doe'),
    (2, 'Mary', 'Jane Smith');
INSERT INTO posts (id, title, category_id, author_id) VALUES
    (1, 'Hello World', 1, 1),
    (2, 'Hello World', 2, 2),
    (3, 'Second Post: Deep Dive', 2, 1);
INSERT INTO reports (id, name) VALUES
    (1, 'summary'),
    (2, 'report');
"""


class RecordingResolver:
    """Delegates to a real resolver and records every ``fetch``."""

    def __init__(self, inner: SQLiteResolver) -> None:
        self.inner = inner
        self.fetches: list[tuple[str, Any, Any]] = []

    def fetch(self, entity, id=None, filters=None):  # noqa: A002
        self.fetches.append((entity.table, id, filters))
        return self.inner.fetch(entity, id=id, filters=filters)

    def __getattr__(self, name: str) -> Any:
        return getattr(self.inner, name)


@pytest.fixture
def db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.executescript(SCHEMA)
    yield conn
    conn.close()


@pytest.fixture
def db_path(tmp_path) -> str:
    path = tmp_path / "blog.db"
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA)
    conn.close()
    return str(path)


@pytest.fixture
def resolver(db: sqlite3.Connection) -> SQLiteResolver:
    return SQLiteResolver(db, models={"Post": "posts", "Author": "authors"})


@pytest.fixture
def recorder(resolver: SQLiteResolver) -> RecordingResolver:
    return RecordingResolver(resolver)
