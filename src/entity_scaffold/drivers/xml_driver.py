"""
XML Mapping Driver
Reads and writes <Entity>.orm.xml mapping files
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import List, Optional
from xml.dom import minidom

from ..config import MappingFormat
from ..mapping.models import (
    AssociationMapping,
    AssociationType,
    EntityMapping,
    FieldMapping,
    GeneratorStrategy,
    IdentifierMapping,
    IndexMapping,
    JoinColumn,
    JoinTable,
)
from ..utils import MappingFileError
from .base import BaseMappingDriver, parse_bool, parse_int, register_driver

ROOT_TAG = "entity-mapping"

_ASSOCIATION_TAGS = {
    AssociationType.MANY_TO_ONE: "many-to-one",
    AssociationType.ONE_TO_ONE: "one-to-one",
    AssociationType.MANY_TO_MANY: "many-to-many",
}
_TAG_ASSOCIATIONS = {tag: kind for kind, tag in _ASSOCIATION_TAGS.items()}


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


@register_driver(MappingFormat.XML)
class XmlMappingDriver(BaseMappingDriver):
    """
    XML mapping files

    <entity-mapping>
      <entity name="BlogComment" table="blog_comment">
        <id name="id" type="integer" column="id">
          <generator strategy="IDENTITY"/>
        </id>
        <field name="author" type="string" column="author" length="20" nullable="false"/>
        <many-to-one field="post" target-entity="BlogPost">
          <join-columns>
            <join-column name="post_id" referenced-column-name="id" on-delete="CASCADE"/>
          </join-columns>
        </many-to-one>
      </entity>
    </entity-mapping>
    """

    @property
    def format(self) -> MappingFormat:
        return MappingFormat.XML

    @property
    def extension(self) -> str:
        return ".orm.xml"

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def dump(self, entity: EntityMapping) -> str:
        root = ET.Element(ROOT_TAG)
        element = ET.SubElement(root, "entity", {"name": entity.name, "table": entity.table})

        self._dump_indexes(element, "indexes", "index", entity.indexes)
        self._dump_indexes(element, "unique-constraints", "unique-constraint", entity.unique_constraints)

        for identifier in entity.identifiers:
            id_element = ET.SubElement(element, "id")
            self._set_field_attributes(id_element, identifier)
            self._dump_options(id_element, identifier)
            ET.SubElement(id_element, "generator", {"strategy": identifier.strategy.value})
            if identifier.sequence_name:
                ET.SubElement(id_element, "sequence-generator", {"sequence-name": identifier.sequence_name})

        for field_mapping in entity.fields:
            field_element = ET.SubElement(element, "field")
            self._set_field_attributes(field_element, field_mapping)
            field_element.set("nullable", _bool_text(field_mapping.nullable))
            if field_mapping.unique:
                field_element.set("unique", "true")
            self._dump_options(field_element, field_mapping)

        for assoc in entity.associations:
            self._dump_association(element, assoc)

        raw = ET.tostring(root, encoding="utf-8")
        pretty = minidom.parseString(raw).toprettyxml(indent="  ", encoding="utf-8")
        return pretty.decode("utf-8")

    @staticmethod
    def _set_field_attributes(element: ET.Element, mapping: FieldMapping) -> None:
        element.set("name", mapping.name)
        element.set("type", mapping.type)
        element.set("column", mapping.column)
        if mapping.length is not None:
            element.set("length", str(mapping.length))
        if mapping.precision is not None:
            element.set("precision", str(mapping.precision))
        if mapping.scale is not None:
            element.set("scale", str(mapping.scale))

    @staticmethod
    def _dump_options(element: ET.Element, mapping: FieldMapping) -> None:
        options = []
        if mapping.unsigned:
            options.append(("unsigned", "true"))
        if mapping.default is not None:
            options.append(("default", mapping.default))
        if mapping.comment:
            options.append(("comment", mapping.comment))
        if not options:
            return

        options_element = ET.SubElement(element, "options")
        for name, value in options:
            option = ET.SubElement(options_element, "option", {"name": name})
            option.text = value

    @staticmethod
    def _dump_indexes(parent: ET.Element, group_tag: str, tag: str, indexes: List[IndexMapping]) -> None:
        if not indexes:
            return
        group = ET.SubElement(parent, group_tag)
        for index in indexes:
            attributes = {"columns": ",".join(index.columns)}
            if index.name:
                attributes["name"] = index.name
            ET.SubElement(group, tag, attributes)

    @staticmethod
    def _dump_join_columns(parent: ET.Element, tag: str, join_columns: List[JoinColumn]) -> None:
        group = ET.SubElement(parent, tag)
        for jc in join_columns:
            attributes = {
                "name": jc.name,
                "referenced-column-name": jc.referenced_column_name,
                "nullable": _bool_text(jc.nullable),
            }
            if jc.on_delete:
                attributes["on-delete"] = jc.on_delete
            ET.SubElement(group, "join-column", attributes)

    def _dump_association(self, parent: ET.Element, assoc: AssociationMapping) -> None:
        element = ET.SubElement(parent, _ASSOCIATION_TAGS[assoc.type], {
            "field": assoc.field_name,
            "target-entity": assoc.target_entity,
        })
        if assoc.is_identifier:
            element.set("id", "true")

        if assoc.join_table is not None:
            join_table = ET.SubElement(element, "join-table", {"name": assoc.join_table.name})
            self._dump_join_columns(join_table, "join-columns", assoc.join_table.join_columns)
            self._dump_join_columns(join_table, "inverse-join-columns", assoc.join_table.inverse_join_columns)
        else:
            self._dump_join_columns(element, "join-columns", assoc.join_columns)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load(self, text: str, source: Optional[str] = None) -> EntityMapping:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise MappingFileError(f"Invalid XML: {e}", file_path=source, original_error=e) from e

        if root.tag != ROOT_TAG:
            raise MappingFileError(f"Expected <{ROOT_TAG}> root element, got <{root.tag}>", file_path=source)

        entities = root.findall("entity")
        if len(entities) != 1:
            raise MappingFileError(
                f"Expected exactly one <entity> element, found {len(entities)}", file_path=source
            )
        element = entities[0]

        entity = EntityMapping(
            name=self._required(element, "name", source),
            table=self._required(element, "table", source),
        )

        for child in element:
            if child.tag == "id":
                entity.identifiers.append(self._load_identifier(child, source))
            elif child.tag == "field":
                entity.fields.append(self._load_field(child, source))
            elif child.tag in _TAG_ASSOCIATIONS:
                entity.associations.append(self._load_association(child, source))
            elif child.tag == "indexes":
                entity.indexes = self._load_indexes(child, "index", source)
            elif child.tag == "unique-constraints":
                entity.unique_constraints = self._load_indexes(child, "unique-constraint", source)
            else:
                raise MappingFileError(f"Unexpected element <{child.tag}> in <entity>", file_path=source)

        return entity

    @staticmethod
    def _required(element: ET.Element, attribute: str, source: Optional[str]) -> str:
        value = element.get(attribute)
        if not value:
            raise MappingFileError(f"<{element.tag}> is missing the '{attribute}' attribute", file_path=source)
        return value

    @staticmethod
    def _load_options(element: ET.Element) -> dict:
        options = {}
        options_element = element.find("options")
        if options_element is not None:
            for option in options_element.findall("option"):
                options[option.get("name")] = option.text or ""
        return options

    def _field_kwargs(self, element: ET.Element, source: Optional[str]) -> dict:
        options = self._load_options(element)
        return dict(
            name=self._required(element, "name", source),
            column=element.get("column") or self._required(element, "name", source),
            type=self._required(element, "type", source),
            length=parse_int(element.get("length"), source),
            precision=parse_int(element.get("precision"), source),
            scale=parse_int(element.get("scale"), source),
            unsigned=parse_bool(options.get("unsigned"), source),
            default=options.get("default"),
            comment=options.get("comment") or None,
        )

    def _load_field(self, element: ET.Element, source: Optional[str]) -> FieldMapping:
        return FieldMapping(
            nullable=parse_bool(element.get("nullable"), source, default=True),
            unique=parse_bool(element.get("unique"), source),
            **self._field_kwargs(element, source),
        )

    def _load_identifier(self, element: ET.Element, source: Optional[str]) -> IdentifierMapping:
        strategy = GeneratorStrategy.NONE
        generator = element.find("generator")
        if generator is not None:
            value = (generator.get("strategy") or "NONE").upper()
            try:
                strategy = GeneratorStrategy(value)
            except ValueError as e:
                raise MappingFileError(f"Unknown generator strategy '{value}'", file_path=source) from e

        sequence = element.find("sequence-generator")
        sequence_name = sequence.get("sequence-name") if sequence is not None else None

        return IdentifierMapping(
            nullable=False,
            strategy=strategy,
            sequence_name=sequence_name,
            **self._field_kwargs(element, source),
        )

    def _load_join_columns(self, element: Optional[ET.Element], source: Optional[str]) -> List[JoinColumn]:
        if element is None:
            return []
        return [
            JoinColumn(
                name=self._required(jc, "name", source),
                referenced_column_name=jc.get("referenced-column-name") or "id",
                nullable=parse_bool(jc.get("nullable"), source, default=True),
                on_delete=jc.get("on-delete"),
            )
            for jc in element.findall("join-column")
        ]

    def _load_association(self, element: ET.Element, source: Optional[str]) -> AssociationMapping:
        assoc = AssociationMapping(
            type=_TAG_ASSOCIATIONS[element.tag],
            field_name=self._required(element, "field", source),
            target_entity=self._required(element, "target-entity", source),
            is_identifier=parse_bool(element.get("id"), source),
        )

        join_table = element.find("join-table")
        if join_table is not None:
            assoc.join_table = JoinTable(
                name=self._required(join_table, "name", source),
                join_columns=self._load_join_columns(join_table.find("join-columns"), source),
                inverse_join_columns=self._load_join_columns(join_table.find("inverse-join-columns"), source),
            )
        else:
            assoc.join_columns = self._load_join_columns(element.find("join-columns"), source)

        return assoc

    def _load_indexes(self, group: ET.Element, tag: str, source: Optional[str]) -> List[IndexMapping]:
        indexes = []
        for element in group.findall(tag):
            columns = [c.strip() for c in self._required(element, "columns", source).split(",") if c.strip()]
            indexes.append(IndexMapping(columns=columns, name=element.get("name")))
        return indexes
