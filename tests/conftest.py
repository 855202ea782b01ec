"""
Shared fixtures: the blog schema used throughout the tests
"""
import itertools
import os
import sqlite3
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from entity_scaffold.adapters import SQLiteAdapter
from entity_scaffold.config import DatabaseConfig, DatabaseType


BLOG_DDL = """
CREATE TABLE blog_post (
    id INTEGER PRIMARY KEY,
    title VARCHAR(100) NOT NULL,
    content TEXT NOT NULL,
    created_at DATETIME NOT NULL
);

CREATE TABLE blog_comment (
    id INTEGER PRIMARY KEY,
    post_id INTEGER NOT NULL REFERENCES blog_post (id) ON DELETE CASCADE,
    author VARCHAR(20) NOT NULL,
    content TEXT NOT NULL,
    created_at DATETIME NOT NULL
);

CREATE INDEX blog_comment_post_id_idx ON blog_comment (post_id);
"""

TAG_DDL = """
CREATE TABLE tag (
    id INTEGER PRIMARY KEY,
    name VARCHAR(50) NOT NULL UNIQUE
);

CREATE TABLE post_tag (
    post_id INTEGER NOT NULL REFERENCES blog_post (id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tag (id),
    PRIMARY KEY (post_id, tag_id)
);
"""


def create_database(path, *scripts):
    """Create a SQLite database file from DDL scripts"""
    connection = sqlite3.connect(str(path))
    try:
        for script in scripts:
            connection.executescript(script)
        connection.commit()
    finally:
        connection.close()
    return path


def introspect(path, **kwargs):
    """Introspect a SQLite database file"""
    config = DatabaseConfig(db_type=DatabaseType.SQLITE, sqlite_path=str(path))
    with SQLiteAdapter(config) as adapter:
        return adapter.get_schema(**kwargs)


@pytest.fixture
def blog_db(tmp_path):
    """SQLite file holding the blog_post / blog_comment schema"""
    return create_database(tmp_path / "blog.db", BLOG_DDL)


@pytest.fixture
def blog_tag_db(tmp_path):
    """Blog schema plus a tag table and a post_tag junction table"""
    return create_database(tmp_path / "blog_tags.db", BLOG_DDL, TAG_DDL)


@pytest.fixture
def blog_config(blog_db):
    return DatabaseConfig(db_type=DatabaseType.SQLITE, sqlite_path=str(blog_db))


@pytest.fixture
def blog_schema(blog_db):
    return introspect(blog_db)


@pytest.fixture
def blog_tag_schema(blog_tag_db):
    return introspect(blog_tag_db)


@pytest.fixture
def sqlite_database(tmp_path):
    """Factory creating a fresh SQLite file from DDL scripts"""
    counter = itertools.count(1)

    def build(*scripts):
        return create_database(tmp_path / f"catalog_{next(counter)}.db", *scripts)

    return build
