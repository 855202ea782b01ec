"""
Mapping Metadata Package
Intermediate entity model, naming, type mapping and the catalog builder
"""
from .models import (
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
from .naming import NamingStrategy
from .types import MAPPING_TYPES, MappedType, TypeMapper, parse_sql_type
from .builder import MappingMetadataBuilder, is_junction_table

__all__ = [
    # Models
    "AssociationMapping",
    "AssociationType",
    "EntityMapping",
    "FieldMapping",
    "GeneratorStrategy",
    "IdentifierMapping",
    "IndexMapping",
    "JoinColumn",
    "JoinTable",
    # Naming and types
    "NamingStrategy",
    "MAPPING_TYPES",
    "MappedType",
    "TypeMapper",
    "parse_sql_type",
    # Builder
    "MappingMetadataBuilder",
    "is_junction_table",
]
