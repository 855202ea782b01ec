#!/usr/bin/env python3
"""
Basic Usage Example for Entity Scaffold

This example demonstrates:
1. Creating a pipeline against a SQLite blog database
2. Importing XML mapping files for a module
3. Converting the mapping files into SQLAlchemy entities
"""
import sys
import os
import tempfile

# Add src to path for local development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from entity_scaffold import (
    create_pipeline,
    setup_logging,
)

BLOG_SCHEMA = [
    """
    CREATE TABLE blog_post (
        id INTEGER PRIMARY KEY,
        title VARCHAR(100) NOT NULL,
        content TEXT NOT NULL,
        created_at DATETIME NOT NULL
    )
    """,
    """
    CREATE TABLE blog_comment (
        id INTEGER PRIMARY KEY,
        post_id INTEGER NOT NULL REFERENCES blog_post(id) ON DELETE CASCADE,
        author VARCHAR(20) NOT NULL,
        content TEXT NOT NULL,
        created_at DATETIME NOT NULL
    )
    """,
    "CREATE INDEX blog_comment_post_id_idx ON blog_comment (post_id)",
]


def main():
    setup_logging(level="INFO")

    print("=" * 60)
    print("Entity Scaffold - Basic Usage Example")
    print("=" * 60)

    workdir = tempfile.mkdtemp(prefix="entity-scaffold-")
    database = os.path.join(workdir, "blog.db")
    module = os.path.join(workdir, "src", "blog")

    print("\n1. Creating pipeline with SQLite...")
    pipeline = create_pipeline(db_type="sqlite", database=database, sqlite_path=database)

    print("2. Setting up the blog schema...")
    for statement in BLOG_SCHEMA:
        pipeline.adapter.execute_query(statement)

    try:
        print("\n3. Catalog:")
        print(pipeline.inspect().to_schema_string())

        print("\n4. Importing XML mapping files...")
        imported = pipeline.import_mapping(module, mapping_format="xml")
        for path in imported.written:
            print(f"   wrote {path}")

        print("\n5. Converting mapping files into entities...")
        converted = pipeline.convert_mapping(module)
        for path in converted.written:
            print(f"   wrote {path}")

        entity_file = os.path.join(converted.entity_dir, "blog_comment.py")
        print(f"\n6. {entity_file}:")
        with open(entity_file, encoding="utf-8") as fh:
            print(fh.read())
    finally:
        pipeline.close()

    print(f"Output kept in {workdir}")


if __name__ == "__main__":
    main()
