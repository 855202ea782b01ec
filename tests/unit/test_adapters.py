"""
Unit Tests for Database Adapters
"""
import logging

import pytest
from unittest.mock import MagicMock
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from entity_scaffold.adapters import (
    DatabaseAdapterRegistry,
    DatabaseSchema,
    TableSchema,
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    QueryResult,
    compile_table_filter,
    create_adapter,
    get_supported_databases,
)
from entity_scaffold.adapters.postgresql_adapter import parse_sequence_default
from entity_scaffold.adapters.sqlite_adapter import SQLiteAdapter
from entity_scaffold.config import DatabaseConfig, DatabaseType
from entity_scaffold.utils import DatabaseConnectionError, SchemaError


class TestDatabaseSchema:
    """Tests for DatabaseSchema class"""

    def test_schema_creation(self):
        """Test basic schema creation"""
        schema = DatabaseSchema(
            database_name="blog",
            database_type=DatabaseType.SQLITE,
        )
        assert schema.database_name == "blog"
        assert schema.database_type == DatabaseType.SQLITE
        assert len(schema.tables) == 0

    def test_schema_to_string(self):
        """Test catalog listing"""
        table = TableSchema(
            name="blog_post",
            columns=[
                ColumnSchema(name="id", data_type="INTEGER", nullable=False, auto_increment=True),
                ColumnSchema(name="title", data_type="VARCHAR(100)", nullable=False),
            ],
            primary_key=["id"],
        )
        schema = DatabaseSchema(
            database_name="blog",
            database_type=DatabaseType.SQLITE,
            tables={"blog_post": table},
        )

        schema_str = schema.to_schema_string()
        assert "-- Database: blog (sqlite)" in schema_str
        assert "TABLE blog_post (" in schema_str
        assert "id INTEGER NOT NULL AUTO_INCREMENT" in schema_str
        assert "PRIMARY KEY (id)" in schema_str

    def test_get_table_case_insensitive(self):
        """Test case-insensitive table lookup"""
        table = TableSchema(name="Blog_Post", columns=[])
        schema = DatabaseSchema(
            database_name="blog",
            database_type=DatabaseType.SQLITE,
            tables={"Blog_Post": table},
        )

        assert schema.get_table("Blog_Post") is table
        assert schema.get_table("blog_post") is table
        assert schema.get_table("missing") is None

    def test_filtered(self):
        """Test restricting a schema to matching tables"""
        schema = DatabaseSchema(
            database_name="blog",
            database_type=DatabaseType.SQLITE,
            tables={
                "blog_post": TableSchema(name="blog_post", columns=[]),
                "blog_comment": TableSchema(name="blog_comment", columns=[]),
                "user": TableSchema(name="user", columns=[]),
            },
        )

        filtered = schema.filtered("blog_")
        assert sorted(filtered.tables) == ["blog_comment", "blog_post"]
        assert len(schema.tables) == 3


class TestTableFilter:
    """Tests for table filter compilation"""

    def test_empty_filter_accepts_everything(self):
        matches = compile_table_filter(None)
        assert matches("anything")
        assert compile_table_filter("")("anything")

    def test_regex_anchored_at_start(self):
        matches = compile_table_filter("blog_")
        assert matches("blog_post")
        assert matches("BLOG_COMMENT")
        assert not matches("old_blog_post")

    def test_callable_passes_through(self):
        matches = compile_table_filter(lambda name: name.endswith("_log"))
        assert matches("audit_log")
        assert not matches("blog_post")


class TestTableSchema:
    """Tests for TableSchema"""

    def test_get_column_case_insensitive(self):
        table = TableSchema(name="blog_post", columns=[ColumnSchema(name="Title", data_type="TEXT")])
        assert table.get_column("title").name == "Title"
        assert table.get_column("missing") is None

    def test_ddl_string(self):
        """Test DDL rendering of keys and constraints"""
        table = TableSchema(
            name="blog_comment",
            columns=[
                ColumnSchema(name="id", data_type="INTEGER", nullable=False),
                ColumnSchema(name="post_id", data_type="INTEGER", nullable=False),
            ],
            primary_key=["id"],
            foreign_keys=[ForeignKeySchema(
                name="blog_post_id",
                columns=["post_id"],
                referenced_table="blog_post",
                referenced_columns=["id"],
                on_delete="CASCADE",
            )],
            indexes=[IndexSchema(name="blog_comment_post_id_idx", columns=["post_id"])],
        )

        ddl = table.to_ddl_string()
        assert "KEY blog_comment_post_id_idx (post_id)" in ddl
        assert "CONSTRAINT blog_post_id FOREIGN KEY (post_id) REFERENCES blog_post(id) ON DELETE CASCADE" in ddl
        assert ddl.endswith(");")
        assert ",\n);" not in ddl


class TestQueryResult:
    """Tests for QueryResult class"""

    def test_successful_result(self):
        """Test successful query result"""
        result = QueryResult(
            success=True,
            columns=["id", "title"],
            rows=[(1, "Hello"), (2, "World")],
            row_count=2,
            execution_time_ms=10.5,
        )

        assert result.success
        assert result.row_count == 2

    def test_to_dict(self):
        """Test result serialization"""
        result = QueryResult(success=True, columns=["id"], rows=[(1,)], row_count=1)

        result_dict = result.to_dict()
        assert result_dict["success"] is True
        assert result_dict["rows"] == [[1]]


class TestSQLiteAdapter:
    """Tests for SQLite adapter"""

    @pytest.fixture
    def adapter(self, blog_config):
        """SQLite adapter on the blog database"""
        adapter = SQLiteAdapter(blog_config)
        adapter.connect()
        yield adapter
        adapter.disconnect()

    def test_connection(self, adapter):
        """Test connection is established"""
        assert adapter.is_connected()
        assert adapter.database_type == DatabaseType.SQLITE

    def test_disconnect(self, adapter):
        adapter.disconnect()
        assert not adapter.is_connected()

    def test_execute_query(self, adapter):
        """Test query execution"""
        result = adapter.execute_query("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
        assert result.success
        assert result.columns == ["name"]
        assert ("blog_post",) in result.rows

    def test_invalid_query(self, adapter):
        """Test a failing statement is reported, not raised"""
        result = adapter.execute_query("SELECT * FROM nonexistent_table")
        assert not result.success
        assert "nonexistent_table" in result.error_message

    def test_table_names(self, adapter):
        schema = adapter.get_schema()
        assert sorted(schema.tables) == ["blog_comment", "blog_post"]
        assert schema.views == {}

    def test_columns(self, adapter):
        """Test column introspection"""
        table = adapter.get_schema().tables["blog_comment"]

        assert [c.name for c in table.columns] == ["id", "post_id", "author", "content", "created_at"]
        author = table.get_column("author")
        assert author.data_type == "VARCHAR(20)"
        assert author.nullable is False

    def test_rowid_alias_auto_increments(self, adapter):
        """Test INTEGER PRIMARY KEY is detected as auto-increment"""
        table = adapter.get_schema().tables["blog_post"]

        assert table.primary_key == ["id"]
        assert table.get_column("id").auto_increment
        assert table.get_column("id").is_primary_key
        assert not table.get_column("title").auto_increment

    def test_foreign_keys(self, adapter):
        """Test foreign key introspection"""
        table = adapter.get_schema().tables["blog_comment"]

        assert len(table.foreign_keys) == 1
        fk = table.foreign_keys[0]
        assert fk.columns == ["post_id"]
        assert fk.referenced_table == "blog_post"
        assert fk.referenced_columns == ["id"]
        assert fk.on_delete == "CASCADE"

    def test_indexes(self, adapter):
        table = adapter.get_schema().tables["blog_comment"]

        index = next(i for i in table.indexes if i.name == "blog_comment_post_id_idx")
        assert index.columns == ["post_id"]
        assert not index.is_unique
        assert not index.is_primary

    def test_composite_primary_key_and_unique(self, adapter):
        """Test composite keys are not auto-increment and UNIQUE marks the column"""
        adapter.execute_query("CREATE TABLE tag (id INTEGER PRIMARY KEY, name VARCHAR(50) NOT NULL UNIQUE)")
        adapter.execute_query(
            "CREATE TABLE post_tag ("
            "post_id INTEGER NOT NULL REFERENCES blog_post (id), "
            "tag_id INTEGER NOT NULL REFERENCES tag, "
            "PRIMARY KEY (post_id, tag_id))"
        )

        schema = adapter.get_schema(force_refresh=True)
        post_tag = schema.tables["post_tag"]
        assert post_tag.primary_key == ["post_id", "tag_id"]
        assert not any(c.auto_increment for c in post_tag.columns)
        assert all(i.is_primary for i in post_tag.indexes)

        # REFERENCES tag without a column list targets tag's primary key
        tag_fk = next(fk for fk in post_tag.foreign_keys if fk.referenced_table == "tag")
        assert tag_fk.referenced_columns == ["id"]

        assert schema.tables["tag"].get_column("name").is_unique

    def test_schema_cache(self, adapter):
        """Test schema is cached until refreshed"""
        first = adapter.get_schema()
        adapter.execute_query("CREATE TABLE extra (id INTEGER PRIMARY KEY)")

        assert adapter.get_schema() is first
        assert "extra" in adapter.get_schema(force_refresh=True).tables

    def test_table_filter(self, adapter):
        schema = adapter.get_schema(table_filter="blog_post$")
        assert list(schema.tables) == ["blog_post"]

    def test_expression_index_is_skipped(self, adapter, caplog):
        """Test an index on an expression is left out with a warning"""
        adapter.execute_query("CREATE INDEX ix_comment_author_lower ON blog_comment (lower(author))")

        with caplog.at_level(logging.WARNING):
            table = adapter.get_schema(force_refresh=True).tables["blog_comment"]

        assert [i.name for i in table.indexes] == ["blog_comment_post_id_idx"]
        assert "ix_comment_author_lower" in caplog.text

    def test_partial_index_flag(self, adapter):
        """Test a partial UNIQUE index does not make its column unique"""
        adapter.execute_query(
            "CREATE UNIQUE INDEX uq_comment_author ON blog_comment (author) WHERE post_id IS NOT NULL"
        )

        table = adapter.get_schema(force_refresh=True).tables["blog_comment"]

        index = next(i for i in table.indexes if i.name == "uq_comment_author")
        assert index.is_partial
        assert index.is_unique
        assert not table.get_column("author").is_unique
        assert not next(i for i in table.indexes if i.name == "blog_comment_post_id_idx").is_partial

    def test_views_only_on_request(self, adapter):
        """Test views are read only when asked for, and the cache is refilled for them"""
        adapter.execute_query("CREATE VIEW recent_post AS SELECT id, title FROM blog_post")

        schema = adapter.get_schema(force_refresh=True)
        assert schema.views == {}

        with_views = adapter.get_schema(include_views=True)
        assert with_views is not schema
        assert [c.name for c in with_views.views["recent_post"].columns] == ["id", "title"]

        # A cache holding views also serves callers that do not want them
        assert adapter.get_schema() is with_views

    def test_catalog_failure_raises_schema_error(self, blog_config):
        adapter = SQLiteAdapter(blog_config)
        adapter.execute_query = MagicMock(return_value=QueryResult(success=False, error_message="boom"))

        with pytest.raises(SchemaError):
            adapter._fetch_table_names()

    def test_unreachable_file(self, tmp_path):
        config = DatabaseConfig(
            db_type=DatabaseType.SQLITE,
            sqlite_path=str(tmp_path / "missing" / "blog.db"),
        )
        adapter = SQLiteAdapter(config)

        with pytest.raises(DatabaseConnectionError):
            adapter.connect()


class TestPostgreSQLHelpers:
    """Tests for PostgreSQL catalog helpers"""

    def test_sequence_default(self):
        assert parse_sequence_default("nextval('blog_post_id_seq'::regclass)") == "blog_post_id_seq"
        assert parse_sequence_default("nextval('public.blog_post_id_seq'::regclass)") == "blog_post_id_seq"

    def test_non_sequence_default(self):
        assert parse_sequence_default("now()") is None
        assert parse_sequence_default(None) is None


class TestAdapterRegistry:
    """Tests for adapter registry"""

    def test_sqlite_registered(self):
        """Test SQLite adapter is registered"""
        assert DatabaseAdapterRegistry.get_adapter_class(DatabaseType.SQLITE) is SQLiteAdapter

    def test_get_supported_databases(self):
        """Test getting supported databases"""
        supported = get_supported_databases()
        assert DatabaseType.SQLITE in supported
        assert DatabaseType.MYSQL in supported
        assert DatabaseType.POSTGRESQL in supported
        assert len(supported) == 3

    def test_create_adapter(self, blog_config):
        """Test adapter factory"""
        adapter = create_adapter(blog_config)
        assert isinstance(adapter, SQLiteAdapter)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
