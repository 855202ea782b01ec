"""
YAML Mapping Driver
Reads and writes <Entity>.orm.yml mapping files
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import yaml

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


@register_driver(MappingFormat.YAML)
class YamlMappingDriver(BaseMappingDriver):
    """
    YAML mapping files

    BlogComment:
      type: entity
      table: blog_comment
      id:
        id: {type: integer, column: id, generator: {strategy: IDENTITY}}
      fields:
        author: {type: string, column: author, length: 20, nullable: false}
      many_to_one:
        post:
          target_entity: BlogPost
          join_columns:
            - {name: post_id, referenced_column_name: id, on_delete: CASCADE}
    """

    @property
    def format(self) -> MappingFormat:
        return MappingFormat.YAML

    @property
    def extension(self) -> str:
        return ".orm.yml"

    def dump(self, entity: EntityMapping) -> str:
        body: Dict[str, Any] = {"type": "entity", "table": entity.table}

        if entity.indexes:
            body["indexes"] = [self._dump_index(i) for i in entity.indexes]
        if entity.unique_constraints:
            body["unique_constraints"] = [self._dump_index(u) for u in entity.unique_constraints]

        if entity.identifiers:
            ids: Dict[str, Any] = {}
            for identifier in entity.identifiers:
                data = self._dump_field(identifier)
                data["generator"] = {"strategy": identifier.strategy.value}
                if identifier.sequence_name:
                    data["sequence_generator"] = {"sequence_name": identifier.sequence_name}
                ids[identifier.name] = data
            body["id"] = ids

        if entity.fields:
            fields: Dict[str, Any] = {}
            for field_mapping in entity.fields:
                data = self._dump_field(field_mapping)
                data["nullable"] = field_mapping.nullable
                if field_mapping.unique:
                    data["unique"] = True
                fields[field_mapping.name] = data
            body["fields"] = fields

        for kind in AssociationType:
            group = {
                assoc.field_name: self._dump_association(assoc)
                for assoc in entity.associations if assoc.type == kind
            }
            if group:
                body[kind.value] = group

        return yaml.safe_dump(
            {entity.name: body},
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )

    @staticmethod
    def _dump_field(mapping: FieldMapping) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": mapping.type, "column": mapping.column}
        for key in ("length", "precision", "scale"):
            value = getattr(mapping, key)
            if value is not None:
                data[key] = value

        options: Dict[str, Any] = {}
        if mapping.unsigned:
            options["unsigned"] = True
        if mapping.default is not None:
            options["default"] = mapping.default
        if mapping.comment:
            options["comment"] = mapping.comment
        if options:
            data["options"] = options
        return data

    @staticmethod
    def _dump_index(index: IndexMapping) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if index.name:
            data["name"] = index.name
        data["columns"] = list(index.columns)
        return data

    @staticmethod
    def _dump_join_columns(join_columns: List[JoinColumn]) -> List[Dict[str, Any]]:
        result = []
        for jc in join_columns:
            data: Dict[str, Any] = {
                "name": jc.name,
                "referenced_column_name": jc.referenced_column_name,
                "nullable": jc.nullable,
            }
            if jc.on_delete:
                data["on_delete"] = jc.on_delete
            result.append(data)
        return result

    def _dump_association(self, assoc: AssociationMapping) -> Dict[str, Any]:
        data: Dict[str, Any] = {"target_entity": assoc.target_entity}
        if assoc.is_identifier:
            data["id"] = True
        if assoc.join_table is not None:
            data["join_table"] = {
                "name": assoc.join_table.name,
                "join_columns": self._dump_join_columns(assoc.join_table.join_columns),
                "inverse_join_columns": self._dump_join_columns(assoc.join_table.inverse_join_columns),
            }
        else:
            data["join_columns"] = self._dump_join_columns(assoc.join_columns)
        return data

    def load(self, text: str, source: Optional[str] = None) -> EntityMapping:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise MappingFileError(f"Invalid YAML: {e}", file_path=source, original_error=e) from e

        if not isinstance(document, dict) or len(document) != 1:
            raise MappingFileError("Expected a single top-level entity name", file_path=source)

        name, body = next(iter(document.items()))
        if not isinstance(body, dict):
            raise MappingFileError(f"Entity '{name}' must be a mapping", file_path=source)
        if body.get("type", "entity") != "entity":
            raise MappingFileError(f"Unsupported mapping type '{body.get('type')}'", file_path=source)
        if not body.get("table"):
            raise MappingFileError(f"Entity '{name}' has no table", file_path=source)

        entity = EntityMapping(name=str(name), table=str(body["table"]))

        for field_name, data in self._section(body, "id", source).items():
            entity.identifiers.append(self._load_identifier(str(field_name), data, source))

        for field_name, data in self._section(body, "fields", source).items():
            entity.fields.append(FieldMapping(
                nullable=parse_bool(data.get("nullable"), source, default=True),
                unique=parse_bool(data.get("unique"), source),
                **self._field_kwargs(str(field_name), data, source),
            ))

        for kind in AssociationType:
            for field_name, data in self._section(body, kind.value, source).items():
                entity.associations.append(self._load_association(kind, str(field_name), data, source))

        entity.indexes = self._load_indexes(body.get("indexes"), source)
        entity.unique_constraints = self._load_indexes(body.get("unique_constraints"), source)
        return entity

    @staticmethod
    def _section(body: Dict[str, Any], key: str, source: Optional[str]) -> Dict[str, Dict[str, Any]]:
        section = body.get(key) or {}
        if not isinstance(section, dict) or not all(isinstance(v, dict) for v in section.values()):
            raise MappingFileError(f"Section '{key}' must map names to mappings", file_path=source)
        return section

    @staticmethod
    def _field_kwargs(name: str, data: Dict[str, Any], source: Optional[str]) -> Dict[str, Any]:
        if not data.get("type"):
            raise MappingFileError(f"Field '{name}' has no type", file_path=source)
        options = data.get("options") or {}
        default = options.get("default")
        return dict(
            name=name,
            column=str(data.get("column") or name),
            type=str(data["type"]),
            length=parse_int(data.get("length"), source),
            precision=parse_int(data.get("precision"), source),
            scale=parse_int(data.get("scale"), source),
            unsigned=parse_bool(options.get("unsigned"), source),
            default=None if default is None else str(default),
            comment=options.get("comment") or None,
        )

    def _load_identifier(self, name: str, data: Dict[str, Any], source: Optional[str]) -> IdentifierMapping:
        generator = data.get("generator") or {}
        value = str(generator.get("strategy") or "NONE").upper()
        try:
            strategy = GeneratorStrategy(value)
        except ValueError as e:
            raise MappingFileError(f"Unknown generator strategy '{value}'", file_path=source) from e

        sequence = data.get("sequence_generator") or {}
        return IdentifierMapping(
            nullable=False,
            strategy=strategy,
            sequence_name=sequence.get("sequence_name"),
            **self._field_kwargs(name, data, source),
        )

    @staticmethod
    def _load_join_columns(items: Any, source: Optional[str]) -> List[JoinColumn]:
        if not items:
            return []
        if not isinstance(items, list):
            raise MappingFileError("join_columns must be a list", file_path=source)

        join_columns = []
        for item in items:
            if not isinstance(item, dict) or not item.get("name"):
                raise MappingFileError("Every join column needs a name", file_path=source)
            join_columns.append(JoinColumn(
                name=str(item["name"]),
                referenced_column_name=str(item.get("referenced_column_name") or "id"),
                nullable=parse_bool(item.get("nullable"), source, default=True),
                on_delete=item.get("on_delete"),
            ))
        return join_columns

    def _load_association(
        self,
        kind: AssociationType,
        name: str,
        data: Dict[str, Any],
        source: Optional[str]
    ) -> AssociationMapping:
        if not data.get("target_entity"):
            raise MappingFileError(f"Association '{name}' has no target_entity", file_path=source)

        assoc = AssociationMapping(
            type=kind,
            field_name=name,
            target_entity=str(data["target_entity"]),
            is_identifier=parse_bool(data.get("id"), source),
        )

        join_table = data.get("join_table")
        if join_table:
            if not join_table.get("name"):
                raise MappingFileError(f"Join table of '{name}' has no name", file_path=source)
            assoc.join_table = JoinTable(
                name=str(join_table["name"]),
                join_columns=self._load_join_columns(join_table.get("join_columns"), source),
                inverse_join_columns=self._load_join_columns(join_table.get("inverse_join_columns"), source),
            )
        else:
            assoc.join_columns = self._load_join_columns(data.get("join_columns"), source)
        return assoc

    @staticmethod
    def _load_indexes(items: Any, source: Optional[str]) -> List[IndexMapping]:
        if not items:
            return []
        if not isinstance(items, list):
            raise MappingFileError("Index sections must be lists", file_path=source)

        indexes = []
        for item in items:
            if not isinstance(item, dict) or not item.get("columns"):
                raise MappingFileError("Every index needs a list of columns", file_path=source)
            indexes.append(IndexMapping(columns=[str(c) for c in item["columns"]], name=item.get("name")))
        return indexes
