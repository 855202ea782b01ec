"""
Unit Tests for the Entity Generator
"""
import importlib
import uuid

import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from entity_scaffold.config import GeneratorConfig
from entity_scaffold.generator import EntityGenerator
from entity_scaffold.mapping import (
    AssociationMapping,
    AssociationType,
    EntityMapping,
    FieldMapping,
    GeneratorStrategy,
    IdentifierMapping,
    IndexMapping,
    JoinColumn,
    JoinTable,
    MappingMetadataBuilder,
)
from entity_scaffold.orchestration import create_pipeline
from entity_scaffold.utils import GenerationError


def identity(name="id"):
    return IdentifierMapping(name=name, column=name, type="integer", nullable=False,
                             strategy=GeneratorStrategy.IDENTITY)


def to_one(field_name, target, *columns, nullable=True, kind=AssociationType.MANY_TO_ONE, is_identifier=False):
    """Association whose join columns are given as (column, referenced_column) pairs"""
    return AssociationMapping(
        type=kind,
        field_name=field_name,
        target_entity=target,
        join_columns=[JoinColumn(name=c, referenced_column_name=r, nullable=nullable) for c, r in columns],
        is_identifier=is_identifier,
    )


def render(entities, **config):
    """Generated files keyed by file name"""
    generator = EntityGenerator(GeneratorConfig(**config))
    return {f.name: f.content for f in generator.generate(entities)}


class TestBlogEntities:
    """Entities generated for the blog schema"""

    @pytest.fixture
    def files(self, blog_tag_schema):
        return render(MappingMetadataBuilder().build(blog_tag_schema))

    def test_file_layout(self, files):
        assert sorted(files) == ["__init__.py", "base.py", "blog_comment.py", "blog_post.py", "tag.py"]

    def test_every_file_compiles(self, files):
        for name, content in files.items():
            compile(content, name, "exec")

    def test_base(self, files):
        assert "class Base(DeclarativeBase):" in files["base.py"]

    def test_package_exports(self, files):
        package = files["__init__.py"]
        assert "from .blog_comment import BlogComment" in package
        assert "from .base import Base" in package
        assert '"BlogPost",' in package

    def test_columns(self, files):
        comment = files["blog_comment.py"]

        assert "class BlogComment(Base):" in comment
        assert '__tablename__ = "blog_comment"' in comment
        assert 'id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)' in comment
        assert 'author: Mapped[str] = mapped_column("author", String(20), nullable=False)' in comment
        assert 'created_at: Mapped[datetime.datetime] = mapped_column("created_at", DateTime, nullable=False)' in comment
        assert "import datetime" in comment

    def test_many_to_one(self, files):
        comment = files["blog_comment.py"]

        assert ('post_id: Mapped[int] = mapped_column("post_id", '
                'ForeignKey("blog_post.id", ondelete="CASCADE"), nullable=False)') in comment
        assert 'post: Mapped[BlogPost] = relationship("BlogPost")' in comment
        assert "if TYPE_CHECKING:\n    from .blog_post import BlogPost" in comment

    def test_index(self, files):
        assert 'Index("blog_comment_post_id_idx", "post_id"),' in files["blog_comment.py"]

    def test_unique_constraint(self, files):
        tag = files["tag.py"]
        assert 'UniqueConstraint("name"),' in tag
        assert "unique=True" not in tag

    def test_many_to_many(self, files):
        post = files["blog_post.py"]

        assert "post_tag_table = Table(" in post
        assert '    Column("post_id", ForeignKey("blog_post.id", ondelete="CASCADE"), primary_key=True),' in post
        assert '    Column("tag_id", ForeignKey("tag.id"), primary_key=True),' in post
        assert 'tags: Mapped[List[Tag]] = relationship("Tag", secondary=post_tag_table)' in post
        # No inverse side is generated
        assert "relationship" not in files["tag.py"]

    def test_header_comment(self, blog_schema):
        entities = MappingMetadataBuilder().build(blog_schema)

        with_header = render(entities, header_comment="Do not edit.")
        without_header = render(entities, header_comment=None)
        assert with_header["blog_post.py"].startswith('"""\nBlogPost entity, mapped to table blog_post.\n\nDo not edit.\n"""')
        assert without_header["blog_post.py"].startswith('"""\nBlogPost entity, mapped to table blog_post.\n"""')

    def test_table_args_disabled(self, blog_tag_schema):
        files = render(MappingMetadataBuilder().build(blog_tag_schema), emit_table_args=False)

        assert "__table_args__" not in files["blog_comment.py"]
        assert 'mapped_column("name", String(50), nullable=False, unique=True)' in files["tag.py"]


class TestColumnRendering:
    """Tests for individual column options"""

    @pytest.fixture
    def product(self):
        return EntityMapping(
            name="Product",
            table="product",
            identifiers=[IdentifierMapping(name="id", column="id", type="bigint", nullable=False,
                                           strategy=GeneratorStrategy.SEQUENCE, sequence_name="product_id_seq")],
            fields=[
                FieldMapping(name="title", column="Title", type="string", length=80, nullable=False),
                FieldMapping(name="price", column="price", type="decimal", precision=10, scale=2,
                             default="0.00", comment="Unit price"),
                FieldMapping(name="code", column="code", type="guid", nullable=False, unique=True),
                FieldMapping(name="attributes", column="attributes", type="json"),
                FieldMapping(name="updated_at", column="updated_at", type="datetimetz"),
            ],
            indexes=[IndexMapping(columns=["Title", "price"])],
        )

    @pytest.fixture
    def source(self, product):
        return render([product])["product.py"]

    def test_sequence_identifier(self, source):
        assert ('id: Mapped[int] = mapped_column("id", BigInteger, Sequence("product_id_seq"), '
                'primary_key=True, autoincrement=True)') in source

    def test_nullable_annotation(self, source):
        assert ('price: Mapped[Optional[decimal.Decimal]] = mapped_column("price", Numeric(10, 2), '
                'server_default=text("0.00"), comment="Unit price")') in source
        assert "import decimal" in source

    def test_json_is_explicitly_nullable(self, source):
        assert 'attributes: Mapped[Any] = mapped_column("attributes", JSON, nullable=True)' in source

    def test_unique_and_guid(self, source):
        assert 'code: Mapped[uuid.UUID] = mapped_column("code", Uuid, nullable=False, unique=True)' in source

    def test_timezone(self, source):
        assert 'mapped_column("updated_at", DateTime(timezone=True))' in source

    def test_index_uses_column_names(self, source):
        """Table-level constructs address columns by their database name"""
        assert 'Index("ix_product_Title_price", "Title", "price"),' in source

    def test_natural_key(self):
        country = EntityMapping(
            name="Country",
            table="country",
            identifiers=[IdentifierMapping(name="code", column="code", type="string", length=2, nullable=False)],
        )

        source = render([country])["country.py"]
        assert 'code: Mapped[str] = mapped_column("code", String(2), primary_key=True, autoincrement=False)' in source


class TestAssociationRendering:
    """Tests for relationship() rendering"""

    def test_self_reference(self):
        category = EntityMapping(
            name="Category",
            table="category",
            identifiers=[identity()],
            associations=[to_one("parent", "Category", ("parent_id", "id"))],
        )

        source = render([category])["category.py"]
        assert 'parent: Mapped[Optional[Category]] = relationship("Category", remote_side=[id])' in source
        assert "if TYPE_CHECKING" not in source

    def test_shared_target_names_foreign_keys(self):
        user = EntityMapping(name="User", table="user", identifiers=[identity()])
        message = EntityMapping(
            name="Message",
            table="message",
            identifiers=[identity()],
            associations=[
                to_one("sender", "User", ("sender_id", "id"), nullable=False),
                to_one("recipient", "User", ("recipient_id", "id"), nullable=False),
            ],
        )

        source = render([user, message])["message.py"]
        assert 'sender: Mapped[User] = relationship("User", foreign_keys=[sender_id])' in source
        assert 'recipient: Mapped[User] = relationship("User", foreign_keys=[recipient_id])' in source

    def test_composite_foreign_key(self):
        line = EntityMapping(
            name="OrderLine",
            table="order_line",
            identifiers=[
                IdentifierMapping(name="order_id", column="order_id", type="integer", nullable=False),
                IdentifierMapping(name="line_no", column="line_no", type="smallint", nullable=False),
            ],
        )
        shipment = EntityMapping(
            name="Shipment",
            table="shipment",
            identifiers=[identity()],
            associations=[to_one("line", "OrderLine", ("order_id", "order_id"), ("line_no", "line_no"))],
        )

        source = render([line, shipment])["shipment.py"]
        assert 'ForeignKeyConstraint(["order_id", "line_no"], ["order_line.order_id", "order_line.line_no"]),' in source
        assert 'order_id: Mapped[Optional[int]] = mapped_column("order_id", Integer)' in source
        assert 'line_no: Mapped[Optional[int]] = mapped_column("line_no", SmallInteger)' in source

    def test_composite_foreign_key_with_renamed_attribute(self):
        """The constraint names database columns even when an attribute is renamed"""
        orders = EntityMapping(
            name="Orders",
            table="orders",
            identifiers=[
                IdentifierMapping(name="region", column="region", type="string", length=2, nullable=False),
                IdentifierMapping(name="num", column="num", type="integer", nullable=False),
            ],
        )
        shipment = EntityMapping(
            name="Shipment",
            table="shipment",
            identifiers=[identity()],
            associations=[to_one("o_region", "Orders", ("o_region", "region"), ("o_num", "num"), nullable=False)],
        )

        source = render([orders, shipment])["shipment.py"]
        assert 'ForeignKeyConstraint(["o_region", "o_num"], ["orders.region", "orders.num"]),' in source
        assert 'o_region_id: Mapped[str] = mapped_column("o_region", String(2), nullable=False)' in source

    def test_identifier_association(self):
        user = EntityMapping(name="User", table="user", identifiers=[identity()])
        profile = EntityMapping(
            name="UserProfile",
            table="user_profile",
            fields=[FieldMapping(name="bio", column="bio", type="text")],
            associations=[to_one("user", "User", ("user_id", "id"), nullable=False,
                                 kind=AssociationType.ONE_TO_ONE, is_identifier=True)],
        )

        source = render([user, profile])["user_profile.py"]
        assert 'user_id: Mapped[int] = mapped_column("user_id", ForeignKey("user.id"), primary_key=True)' in source
        assert 'user: Mapped[User] = relationship("User")' in source
        # Key columns come first
        assert source.index("user_id:") < source.index("bio:")

    def test_join_column_name_collision(self):
        """A join column whose attribute name is taken gets an _id suffix"""
        post = EntityMapping(name="Post", table="post", identifiers=[identity()])
        comment = EntityMapping(
            name="Comment",
            table="comment",
            identifiers=[identity()],
            associations=[to_one("post", "Post", ("post", "id"))],
        )

        source = render([post, comment])["comment.py"]
        assert 'post_id: Mapped[Optional[int]] = mapped_column("post", ForeignKey("post.id"))' in source
        assert 'post: Mapped[Optional[Post]] = relationship("Post")' in source

    def test_self_referencing_many_to_many(self):
        user = EntityMapping(
            name="User",
            table="user",
            identifiers=[identity()],
            associations=[AssociationMapping(
                type=AssociationType.MANY_TO_MANY,
                field_name="friends",
                target_entity="User",
                join_table=JoinTable(
                    name="user_friend",
                    join_columns=[JoinColumn(name="user_id", nullable=False)],
                    inverse_join_columns=[JoinColumn(name="friend_id", nullable=False)],
                ),
            )],
        )

        source = render([user])["user.py"]
        assert 'primaryjoin="User.id == user_friend.c.user_id"' in source
        assert 'secondaryjoin="User.id == user_friend.c.friend_id"' in source

    def test_unknown_target(self):
        comment = EntityMapping(
            name="Comment",
            table="comment",
            identifiers=[identity()],
            associations=[to_one("post", "Post", ("post_id", "id"))],
        )

        with pytest.raises(GenerationError) as exc_info:
            render([comment])
        assert exc_info.value.entity_name == "Comment"

    def test_duplicate_entity(self):
        post = EntityMapping(name="Post", table="post", identifiers=[identity()])

        with pytest.raises(GenerationError):
            render([post, post])


class TestModuleNames:
    """Tests for entity module naming"""

    def test_reserved_module_names(self):
        base = EntityMapping(name="Base", table="base", identifiers=[identity()])
        modules = EntityGenerator().module_names([base])
        assert modules == {"Base": "base_entity"}


class TestWrite:
    """Tests for writing the generated files"""

    @pytest.fixture
    def entities(self, blog_schema):
        return MappingMetadataBuilder().build(blog_schema)

    def test_write(self, entities, tmp_path):
        written, skipped = EntityGenerator().write(entities, tmp_path / "entities")

        assert sorted(p.name for p in written) == ["__init__.py", "base.py", "blog_comment.py", "blog_post.py"]
        assert skipped == []

    def test_existing_files_skipped(self, entities, tmp_path):
        generator = EntityGenerator()
        generator.write(entities, tmp_path)
        (tmp_path / "blog_post.py").write_text("# customised", encoding="utf-8")

        written, skipped = generator.write(entities, tmp_path)

        assert written == []
        assert len(skipped) == 4
        assert (tmp_path / "blog_post.py").read_text(encoding="utf-8") == "# customised"

    def test_overwrite_with_backup(self, entities, tmp_path):
        generator = EntityGenerator()
        generator.write(entities, tmp_path)
        (tmp_path / "blog_post.py").write_text("# customised", encoding="utf-8")

        written, _ = generator.write(entities, tmp_path, overwrite=True, backup=True)

        assert len(written) == 4
        assert (tmp_path / "blog_post.py~").read_text(encoding="utf-8") == "# customised"
        assert "class BlogPost(Base):" in (tmp_path / "blog_post.py").read_text(encoding="utf-8")

    def test_overwrite_without_backup(self, entities, tmp_path):
        generator = EntityGenerator()
        generator.write(entities, tmp_path)
        generator.write(entities, tmp_path, overwrite=True)

        assert not (tmp_path / "blog_post.py~").exists()


class TestGeneratedModels:
    """The generated package works as SQLAlchemy models"""

    @pytest.fixture
    def models(self, blog_tag_schema, tmp_path, monkeypatch):
        pytest.importorskip("sqlalchemy")

        package = f"scaffold_{uuid.uuid4().hex[:8]}"
        (tmp_path / package).mkdir()
        (tmp_path / package / "__init__.py").write_text("", encoding="utf-8")
        EntityGenerator().write(MappingMetadataBuilder().build(blog_tag_schema), tmp_path / package / "entities")

        monkeypatch.syspath_prepend(str(tmp_path))
        return importlib.import_module(f"{package}.entities")

    def test_mappers_configure(self, models):
        from sqlalchemy import inspect
        from sqlalchemy.orm import configure_mappers

        configure_mappers()
        mapper = inspect(models.BlogComment)
        assert mapper.relationships["post"].mapper.class_ is models.BlogPost
        assert inspect(models.BlogPost).relationships["tags"].secondary.name == "post_tag"

    def test_persist_and_load(self, models):
        import datetime

        from sqlalchemy import create_engine, select
        from sqlalchemy.orm import Session

        engine = create_engine("sqlite://")
        models.Base.metadata.create_all(engine)

        now = datetime.datetime(2024, 1, 1, 12, 0)
        with Session(engine) as session:
            post = models.BlogPost(title="Hello", content="First post", created_at=now)
            post.tags.append(models.Tag(name="python"))
            session.add(models.BlogComment(author="alice", content="Nice", created_at=now, post=post))
            session.commit()

        with Session(engine) as session:
            comment = session.scalars(select(models.BlogComment)).one()
            assert comment.post.title == "Hello"
            assert comment.post_id == comment.post.id
            assert [tag.name for tag in comment.post.tags] == ["python"]

        engine.dispose()


class TestGeneratedModelsFromCatalog:
    """Catalogs whose attribute names differ from their column names still import and persist"""

    @pytest.fixture
    def scaffold(self, sqlite_database, tmp_path, monkeypatch):
        """Import and convert a SQLite catalog, then load the generated package"""
        pytest.importorskip("sqlalchemy")
        from sqlalchemy.orm import configure_mappers

        monkeypatch.syspath_prepend(str(tmp_path))

        def build(ddl, mapping_format="xml"):
            database = sqlite_database(ddl)
            package = f"scaffold_{uuid.uuid4().hex[:8]}"
            module = tmp_path / package
            module.mkdir()
            (module / "__init__.py").write_text("", encoding="utf-8")

            with create_pipeline(db_type="sqlite", sqlite_path=str(database)) as pipeline:
                pipeline.import_mapping(module, mapping_format=mapping_format)
                pipeline.convert_mapping(module)

            importlib.invalidate_caches()
            models = importlib.import_module(f"{package}.entities")
            configure_mappers()
            return models

        return build

    @pytest.fixture
    def session_factory(self):
        from sqlalchemy import create_engine
        from sqlalchemy.orm import Session

        engines = []

        def open_session(models):
            engine = create_engine("sqlite://")
            models.Base.metadata.create_all(engine)
            engines.append(engine)
            return Session(engine)

        yield open_session
        for engine in engines:
            engine.dispose()

    def test_mixed_case_and_keyword_columns(self, scaffold, session_factory):
        models = scaffold("""
            CREATE TABLE Posts (
                PostId INTEGER PRIMARY KEY,
                AuthorId INTEGER NOT NULL,
                Title VARCHAR(100) NOT NULL,
                "class" VARCHAR(20),
                Slug VARCHAR(50) NOT NULL,
                UNIQUE (AuthorId, Slug)
            );
            CREATE INDEX ix_posts_title ON Posts (Title);
            CREATE INDEX ix_posts_class ON Posts ("class");
        """)

        from sqlalchemy import UniqueConstraint

        table = models.Posts.__table__
        indexes = {index.name: [c.name for c in index.columns] for index in table.indexes}
        assert indexes == {"ix_posts_title": ["Title"], "ix_posts_class": ["class"]}
        unique = [c for c in table.constraints if isinstance(c, UniqueConstraint)]
        assert [[col.name for col in c.columns] for c in unique] == [["AuthorId", "Slug"]]

        with session_factory(models) as session:
            session.add(models.Posts(authorid=1, title="Hello", class_="news", slug="hello"))
            session.commit()
            post = session.query(models.Posts).one()
            assert (post.postid, post.title, post.class_) == (1, "Hello", "news")

    def test_composite_foreign_key(self, scaffold, session_factory):
        models = scaffold("""
            CREATE TABLE orders (
                region VARCHAR(2) NOT NULL,
                num INTEGER NOT NULL,
                placed_at DATETIME,
                PRIMARY KEY (region, num)
            );
            CREATE TABLE shipment (
                id INTEGER PRIMARY KEY,
                o_region VARCHAR(2) NOT NULL,
                o_num INTEGER NOT NULL,
                carrier VARCHAR(20),
                FOREIGN KEY (o_region, o_num) REFERENCES orders (region, num) ON DELETE CASCADE
            );
        """, mapping_format="yaml")

        from sqlalchemy import inspect

        assert inspect(models.Shipment).relationships["o_region"].mapper.class_ is models.Orders

        with session_factory(models) as session:
            session.add(models.Shipment(carrier="dhl", o_region=models.Orders(region="EU", num=7)))
            session.commit()
            shipment = session.query(models.Shipment).one()
            assert (shipment.o_region_id, shipment.o_num) == ("EU", 7)
            assert shipment.o_region.num == 7

    def test_self_referencing_many_to_one(self, scaffold, session_factory):
        models = scaffold("""
            CREATE TABLE category (
                id INTEGER PRIMARY KEY,
                name VARCHAR(50) NOT NULL,
                parent_id INTEGER REFERENCES category (id)
            );
        """)

        with session_factory(models) as session:
            root = models.Category(name="root")
            session.add(models.Category(name="child", parent=root))
            session.commit()
            child = session.query(models.Category).filter_by(name="child").one()
            assert child.parent.name == "root"
            assert child.parent.parent is None

    def test_self_referencing_many_to_many(self, scaffold, session_factory):
        models = scaffold("""
            CREATE TABLE person (
                id INTEGER PRIMARY KEY,
                name VARCHAR(50) NOT NULL
            );
            CREATE TABLE person_friend (
                person_id INTEGER NOT NULL REFERENCES person (id),
                friend_id INTEGER NOT NULL REFERENCES person (id),
                PRIMARY KEY (person_id, friend_id)
            );
        """)

        with session_factory(models) as session:
            alice = models.Person(name="alice")
            alice.friends.append(models.Person(name="bob"))
            session.add(alice)
            session.commit()
            alice = session.query(models.Person).filter_by(name="alice").one()
            assert [friend.name for friend in alice.friends] == ["bob"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
