"""
Mapping Metadata Definitions

The intermediate model between the database catalog and generated entity
source: one EntityMapping per table, describing how a class's fields map
onto the table's columns.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class GeneratorStrategy(str, Enum):
    """How identifier values are produced"""
    AUTO = "AUTO"
    IDENTITY = "IDENTITY"
    SEQUENCE = "SEQUENCE"
    NONE = "NONE"


class AssociationType(str, Enum):
    """Association kinds that can be derived from a catalog (owning side only)"""
    MANY_TO_ONE = "many_to_one"
    ONE_TO_ONE = "one_to_one"
    MANY_TO_MANY = "many_to_many"


@dataclass
class FieldMapping:
    """A plain column-backed field"""
    name: str
    column: str
    type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nullable: bool = True
    unique: bool = False
    unsigned: bool = False
    default: Optional[str] = None
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "column": self.column,
            "type": self.type,
            "length": self.length,
            "precision": self.precision,
            "scale": self.scale,
            "nullable": self.nullable,
            "unique": self.unique,
            "unsigned": self.unsigned,
            "default": self.default,
            "comment": self.comment,
        }
        return data


@dataclass
class IdentifierMapping(FieldMapping):
    """A field that is part of the primary key"""
    strategy: GeneratorStrategy = GeneratorStrategy.NONE
    sequence_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["strategy"] = self.strategy.value
        data["sequence_name"] = self.sequence_name
        return data


@dataclass
class JoinColumn:
    """Foreign key column backing a to-one association"""
    name: str
    referenced_column_name: str = "id"
    nullable: bool = True
    on_delete: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "referenced_column_name": self.referenced_column_name,
            "nullable": self.nullable,
            "on_delete": self.on_delete,
        }


@dataclass
class JoinTable:
    """Junction table backing a many-to-many association"""
    name: str
    join_columns: List[JoinColumn] = field(default_factory=list)
    inverse_join_columns: List[JoinColumn] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "join_columns": [jc.to_dict() for jc in self.join_columns],
            "inverse_join_columns": [jc.to_dict() for jc in self.inverse_join_columns],
        }


@dataclass
class AssociationMapping:
    """Owning side of an association between two entities"""
    type: AssociationType
    field_name: str
    target_entity: str
    join_columns: List[JoinColumn] = field(default_factory=list)
    join_table: Optional[JoinTable] = None
    is_identifier: bool = False

    @property
    def is_to_one(self) -> bool:
        return self.type in (AssociationType.MANY_TO_ONE, AssociationType.ONE_TO_ONE)

    @property
    def nullable(self) -> bool:
        """A to-one association is optional if any of its join columns is"""
        return any(jc.nullable for jc in self.join_columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "field": self.field_name,
            "target_entity": self.target_entity,
            "join_columns": [jc.to_dict() for jc in self.join_columns],
            "join_table": self.join_table.to_dict() if self.join_table else None,
            "is_identifier": self.is_identifier,
        }


@dataclass
class IndexMapping:
    """Secondary index or unique constraint"""
    columns: List[str]
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "columns": self.columns}


@dataclass
class EntityMapping:
    """
    Complete mapping of one entity class onto one table

    Field order follows the table's column order: identifiers first, then
    plain fields, then associations.
    """
    name: str
    table: str
    identifiers: List[IdentifierMapping] = field(default_factory=list)
    fields: List[FieldMapping] = field(default_factory=list)
    associations: List[AssociationMapping] = field(default_factory=list)
    indexes: List[IndexMapping] = field(default_factory=list)
    unique_constraints: List[IndexMapping] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table,
            "identifiers": [i.to_dict() for i in self.identifiers],
            "fields": [f.to_dict() for f in self.fields],
            "associations": [a.to_dict() for a in self.associations],
            "indexes": [i.to_dict() for i in self.indexes],
            "unique_constraints": [u.to_dict() for u in self.unique_constraints],
        }

    @property
    def attribute_names(self) -> List[str]:
        """Every attribute name the entity declares"""
        names = [i.name for i in self.identifiers]
        names.extend(f.name for f in self.fields)
        names.extend(a.field_name for a in self.associations)
        return names

    @property
    def identifier_columns(self) -> List[str]:
        """Primary key columns, including join columns of identifier associations"""
        columns = [i.column for i in self.identifiers]
        for assoc in self.associations:
            if assoc.is_identifier:
                columns.extend(jc.name for jc in assoc.join_columns)
        return columns

    def get_field(self, name: str) -> Optional[FieldMapping]:
        """Get identifier or plain field by attribute name"""
        for candidate in list(self.identifiers) + list(self.fields):
            if candidate.name == name:
                return candidate
        return None

    def get_field_by_column(self, column: str) -> Optional[FieldMapping]:
        """Get identifier or plain field by column name (case-insensitive)"""
        column_lower = column.lower()
        for candidate in list(self.identifiers) + list(self.fields):
            if candidate.column.lower() == column_lower:
                return candidate
        return None

    def get_association(self, field_name: str) -> Optional[AssociationMapping]:
        for assoc in self.associations:
            if assoc.field_name == field_name:
                return assoc
        return None
