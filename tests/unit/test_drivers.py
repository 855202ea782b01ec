"""
Unit Tests for Mapping Drivers
"""
import xml.etree.ElementTree as ET

import pytest
import yaml
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from entity_scaffold.config import MappingFormat
from entity_scaffold.drivers import (
    XmlMappingDriver,
    YamlMappingDriver,
    detect_formats,
    get_driver,
    get_supported_formats,
    validate_entity,
)
from entity_scaffold.drivers.base import parse_bool, parse_int
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
from entity_scaffold.utils import MappingFileError


def blog_comment():
    return EntityMapping(
        name="BlogComment",
        table="blog_comment",
        identifiers=[IdentifierMapping(name="id", column="id", type="integer", nullable=False,
                                       strategy=GeneratorStrategy.IDENTITY)],
        fields=[
            FieldMapping(name="author", column="author", type="string", length=20, nullable=False),
            FieldMapping(name="content", column="content", type="text", nullable=False),
        ],
        associations=[AssociationMapping(
            type=AssociationType.MANY_TO_ONE,
            field_name="post",
            target_entity="BlogPost",
            join_columns=[JoinColumn(name="post_id", referenced_column_name="id", nullable=False,
                                     on_delete="CASCADE")],
        )],
        indexes=[IndexMapping(columns=["post_id"], name="blog_comment_post_id_idx")],
    )


def full_entity():
    """An entity using every construct the mapping files can express"""
    return EntityMapping(
        name="Product",
        table="product",
        identifiers=[IdentifierMapping(name="id", column="id", type="bigint", nullable=False, unsigned=True,
                                       strategy=GeneratorStrategy.SEQUENCE, sequence_name="product_id_seq")],
        fields=[
            FieldMapping(name="sku", column="SKU", type="string", length=32, nullable=False, unique=True),
            FieldMapping(name="price", column="price", type="decimal", precision=10, scale=2,
                         default="0.00", comment="Unit price"),
            FieldMapping(name="active", column="active", type="boolean", nullable=False, default="1"),
            FieldMapping(name="attributes", column="attributes", type="json"),
        ],
        associations=[
            AssociationMapping(
                type=AssociationType.MANY_TO_ONE,
                field_name="category",
                target_entity="Category",
                join_columns=[JoinColumn(name="category_id", referenced_column_name="id")],
            ),
            AssociationMapping(
                type=AssociationType.MANY_TO_MANY,
                field_name="tags",
                target_entity="Tag",
                join_table=JoinTable(
                    name="product_tag",
                    join_columns=[JoinColumn(name="product_id", nullable=False, on_delete="CASCADE")],
                    inverse_join_columns=[JoinColumn(name="tag_id", nullable=False)],
                ),
            ),
        ],
        indexes=[IndexMapping(columns=["price", "active"])],
        unique_constraints=[IndexMapping(columns=["sku"], name="uniq_product_sku")],
    )


@pytest.fixture(params=[MappingFormat.XML, MappingFormat.YAML], ids=["xml", "yaml"])
def driver(request):
    return get_driver(request.param)


class TestRoundTrip:
    """dump() followed by load() gives back the same mapping"""

    def test_blog_comment(self, driver):
        entity = blog_comment()
        assert driver.load(driver.dump(entity)) == entity

    def test_every_construct(self, driver):
        entity = full_entity()
        assert driver.load(driver.dump(entity)) == entity

    def test_built_from_catalog(self, driver, blog_tag_schema):
        for entity in MappingMetadataBuilder().build(blog_tag_schema):
            assert driver.load(driver.dump(entity)) == entity


class TestXmlDriver:
    """Tests for the XML format"""

    @pytest.fixture
    def driver(self):
        return XmlMappingDriver()

    def test_document_shape(self, driver):
        root = ET.fromstring(driver.dump(blog_comment()))

        assert root.tag == "entity-mapping"
        entity = root.find("entity")
        assert entity.get("name") == "BlogComment"
        assert entity.get("table") == "blog_comment"
        assert entity.find("id/generator").get("strategy") == "IDENTITY"
        assert entity.find("field[@name='author']").get("length") == "20"

        join_column = entity.find("many-to-one[@field='post']/join-columns/join-column")
        assert join_column.get("name") == "post_id"
        assert join_column.get("referenced-column-name") == "id"
        assert join_column.get("on-delete") == "CASCADE"
        assert entity.find("indexes/index").get("columns") == "post_id"

    def test_pretty_printed(self, driver):
        text = driver.dump(blog_comment())
        assert text.startswith('<?xml version="1.0" encoding="utf-8"?>')
        assert '\n  <entity name="BlogComment"' in text

    def test_invalid_xml(self, driver):
        with pytest.raises(MappingFileError) as exc_info:
            driver.load("<entity-mapping><entity", source="BlogPost.orm.xml")
        assert exc_info.value.file_path == "BlogPost.orm.xml"

    def test_wrong_root(self, driver):
        with pytest.raises(MappingFileError):
            driver.load("<hibernate-mapping/>")

    def test_unknown_element(self, driver):
        with pytest.raises(MappingFileError):
            driver.load('<entity-mapping><entity name="A" table="a"><lifecycle/></entity></entity-mapping>')

    def test_missing_attribute(self, driver):
        with pytest.raises(MappingFileError):
            driver.load('<entity-mapping><entity name="A"/></entity-mapping>')


class TestYamlDriver:
    """Tests for the YAML format"""

    @pytest.fixture
    def driver(self):
        return YamlMappingDriver()

    def test_document_shape(self, driver):
        document = yaml.safe_load(driver.dump(blog_comment()))

        body = document["BlogComment"]
        assert body["type"] == "entity"
        assert body["table"] == "blog_comment"
        assert body["id"]["id"]["generator"] == {"strategy": "IDENTITY"}
        assert body["fields"]["author"] == {"type": "string", "column": "author", "length": 20, "nullable": False}
        assert body["many_to_one"]["post"]["join_columns"][0]["on_delete"] == "CASCADE"

    def test_keys_keep_declaration_order(self, driver):
        text = driver.dump(blog_comment())
        assert text.index("table:") < text.index("id:") < text.index("fields:") < text.index("many_to_one:")

    def test_invalid_yaml(self, driver):
        with pytest.raises(MappingFileError):
            driver.load("BlogPost: [unclosed")

    def test_several_entities(self, driver):
        with pytest.raises(MappingFileError):
            driver.load("A: {table: a}\nB: {table: b}\n")

    def test_field_without_type(self, driver):
        with pytest.raises(MappingFileError):
            driver.load("A:\n  table: a\n  fields:\n    title: {column: title}\n")

    def test_hand_written_minimal(self, driver):
        entity = driver.load(
            "Tag:\n"
            "  table: tag\n"
            "  id:\n"
            "    id:\n"
            "      type: integer\n"
            "  fields:\n"
            "    name:\n"
            "      type: string\n"
            "      length: 50\n"
        )

        assert entity.identifiers[0].column == "id"
        assert entity.identifiers[0].strategy == GeneratorStrategy.NONE
        assert entity.get_field("name").nullable is True


class TestFiles:
    """Tests for reading and writing mapping files"""

    def test_write_and_read(self, driver, tmp_path):
        path, written = driver.write(blog_comment(), tmp_path / "mapping")

        assert written
        assert path.name == f"BlogComment{driver.extension}"
        assert driver.read(path) == blog_comment()

    def test_existing_file_kept(self, driver, tmp_path):
        driver.write(blog_comment(), tmp_path)
        path = tmp_path / driver.file_name("BlogComment")
        path.write_text("edited by hand", encoding="utf-8")

        _, written = driver.write(blog_comment(), tmp_path)
        assert not written
        assert path.read_text(encoding="utf-8") == "edited by hand"

        _, written = driver.write(blog_comment(), tmp_path, overwrite=True)
        assert written
        assert driver.read(path) == blog_comment()

    def test_read_directory(self, driver, tmp_path):
        driver.write(blog_comment(), tmp_path)
        driver.write(full_entity(), tmp_path)

        names = [e.name for e in driver.read_directory(tmp_path)]
        assert names == ["BlogComment", "Product"]

    def test_duplicate_entity(self, driver, tmp_path):
        path, _ = driver.write(blog_comment(), tmp_path)
        (tmp_path / f"Copy{driver.extension}").write_text(path.read_text(encoding="utf-8"), encoding="utf-8")

        with pytest.raises(MappingFileError):
            driver.read_directory(tmp_path)

    def test_missing_directory(self, driver, tmp_path):
        assert driver.read_directory(tmp_path / "missing") == []

    def test_detect_formats(self, tmp_path):
        XmlMappingDriver().write(blog_comment(), tmp_path)
        assert detect_formats(tmp_path) == {"xml": ["BlogComment.orm.xml"]}

        YamlMappingDriver().write(full_entity(), tmp_path)
        assert detect_formats(tmp_path) == {
            "xml": ["BlogComment.orm.xml"],
            "yaml": ["Product.orm.yml"],
        }

    def test_supported_formats(self):
        assert set(get_supported_formats()) == {MappingFormat.XML, MappingFormat.YAML}

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            get_driver("json")


class TestValidation:
    """Tests for validate_entity"""

    def test_valid(self):
        assert validate_entity(blog_comment()).name == "BlogComment"

    def test_unknown_type(self):
        entity = blog_comment()
        entity.fields[0].type = "varchar"

        with pytest.raises(MappingFileError):
            validate_entity(entity)

    def test_duplicate_attribute(self):
        entity = blog_comment()
        entity.fields.append(FieldMapping(name="post", column="post", type="text"))

        with pytest.raises(MappingFileError):
            validate_entity(entity)

    def test_keyword_attribute(self):
        entity = blog_comment()
        entity.fields[0].name = "class"

        with pytest.raises(MappingFileError):
            validate_entity(entity)

    def test_no_identifier(self):
        entity = blog_comment()
        entity.identifiers = []

        with pytest.raises(MappingFileError):
            validate_entity(entity)

    def test_many_to_many_without_join_table(self):
        entity = blog_comment()
        entity.associations.append(AssociationMapping(
            type=AssociationType.MANY_TO_MANY, field_name="tags", target_entity="Tag",
        ))

        with pytest.raises(MappingFileError):
            validate_entity(entity)

    def test_read_rejects_invalid_mapping(self, tmp_path):
        path = tmp_path / "Broken.orm.yml"
        path.write_text("Broken:\n  table: broken\n  fields:\n    title: {type: string}\n", encoding="utf-8")

        with pytest.raises(MappingFileError) as exc_info:
            YamlMappingDriver().read(path)
        assert "declares no identifier" in exc_info.value.message


class TestValueParsing:
    """Tests for the scalar helpers shared by the drivers"""

    @pytest.mark.parametrize("value,expected", [
        (True, True), ("true", True), ("1", True), ("no", False), (False, False),
    ])
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_parse_bool_default(self):
        assert parse_bool(None, default=True) is True

    def test_parse_bool_invalid(self):
        with pytest.raises(MappingFileError):
            parse_bool("maybe")

    def test_parse_int(self):
        assert parse_int("20") == 20
        assert parse_int(None) is None
        with pytest.raises(MappingFileError):
            parse_int("twenty")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
