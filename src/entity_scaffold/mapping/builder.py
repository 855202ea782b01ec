"""
Mapping Metadata Builder
Turns an introspected DatabaseSchema into EntityMapping objects
"""
from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple

from ..adapters.base import DatabaseSchema, ForeignKeySchema, TableSchema, TableFilter
from ..config import MappingConfig
from ..utils import MissingPrimaryKeyError, get_logger
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
from .types import TypeMapper

logger = get_logger(__name__)

# Referential actions that carry no information worth mapping
_DEFAULT_ACTIONS = {"NO ACTION", "RESTRICT"}


def _normalize_action(action: Optional[str]) -> Optional[str]:
    if not action:
        return None
    action = action.strip().upper()
    return None if action in _DEFAULT_ACTIONS else action


def _anonymous_index_name(name: Optional[str]) -> Optional[str]:
    # SQLite names implicit indexes itself; they cannot be recreated by name
    if not name or name.lower().startswith("sqlite_autoindex_"):
        return None
    return name


def is_junction_table(table: TableSchema) -> bool:
    """
    A pure many-to-many junction: exactly two foreign keys whose columns are
    all of the table's columns and its whole primary key
    """
    if len(table.foreign_keys) != 2 or not table.primary_key:
        return False

    first = {c.lower() for c in table.foreign_keys[0].columns}
    second = {c.lower() for c in table.foreign_keys[1].columns}
    if first & second:
        return False

    fk_columns = first | second
    all_columns = {c.name.lower() for c in table.columns}
    pk_columns = {c.lower() for c in table.primary_key}
    return fk_columns == all_columns == pk_columns


class MappingMetadataBuilder:
    """
    Builds owning-side mapping metadata from catalog information

    Only what a catalog can tell is derived: inverse sides, inheritance
    and cascade behaviour are left for the developer to add by hand.
    """

    def __init__(self, config: Optional[MappingConfig] = None):
        self.config = config or MappingConfig()
        self.naming = NamingStrategy(singularize=self.config.singularize_entity_names)
        self.type_mapper = TypeMapper(self.config.type_overrides)

    def build(self, schema: DatabaseSchema, table_filter: TableFilter = None) -> List[EntityMapping]:
        """
        Build entity mappings for every mappable table of the schema

        Args:
            schema: Introspected catalog
            table_filter: Regular expression (or predicate) restricting tables

        Returns:
            Entity mappings sorted by entity name
        """
        if table_filter:
            schema = schema.filtered(table_filter)

        tables = [schema.tables[name] for name in sorted(schema.tables)]
        tables = self._drop_tables_without_primary_key(tables)

        entity_names = self._assign_entity_names(
            [t for t in tables if not is_junction_table(t)]
        )

        junctions: List[TableSchema] = []
        regular: List[TableSchema] = []
        for table in tables:
            if is_junction_table(table) and self._junction_targets_mapped(table, entity_names):
                junctions.append(table)
            else:
                regular.append(table)

        # Junctions whose targets are not mapped become ordinary entities
        for table in regular:
            if table.name.lower() not in entity_names:
                entity_names.update(self._assign_entity_names([table], entity_names))

        entities: Dict[str, EntityMapping] = {}
        for table in regular:
            entity = self.build_entity(table, entity_names)
            entities[table.name.lower()] = entity

        for junction in junctions:
            self._add_many_to_many(junction, entities, entity_names)

        result = sorted(entities.values(), key=lambda e: e.name)
        logger.debug(
            f"Built {len(result)} entity mappings "
            f"({len(junctions)} junction tables folded into many-to-many associations)"
        )
        return result

    def _drop_tables_without_primary_key(self, tables: List[TableSchema]) -> List[TableSchema]:
        kept = []
        for table in tables:
            if table.primary_key:
                kept.append(table)
            elif self.config.skip_tables_without_primary_key:
                logger.warning(f"Skipping table '{table.name}': it has no primary key")
            else:
                raise MissingPrimaryKeyError(table.name)
        return kept

    def _assign_entity_names(
        self,
        tables: List[TableSchema],
        existing: Optional[Dict[str, str]] = None
    ) -> Dict[str, str]:
        """Map lower-cased table names to unique entity names"""
        names: Dict[str, str] = {}
        taken = set((existing or {}).values())
        for table in tables:
            name = self.naming.unique_name(self.naming.entity_name(table.name), taken)
            taken.add(name)
            names[table.name.lower()] = name
        return names

    @staticmethod
    def _junction_targets_mapped(table: TableSchema, entity_names: Dict[str, str]) -> bool:
        return all(fk.referenced_table.lower() in entity_names for fk in table.foreign_keys)

    @staticmethod
    def _sorted_foreign_keys(table: TableSchema) -> List[ForeignKeySchema]:
        """Foreign keys in the order of their first column in the table"""
        positions = {c.name.lower(): i for i, c in enumerate(table.columns)}
        return sorted(
            table.foreign_keys,
            key=lambda fk: (positions.get(fk.columns[0].lower(), len(positions)), fk.name),
        )

    def build_entity(self, table: TableSchema, entity_names: Dict[str, str]) -> EntityMapping:
        """Build the mapping of one (non-junction) table"""
        entity = EntityMapping(name=entity_names[table.name.lower()], table=table.name)
        pk_columns = [c.lower() for c in table.primary_key]

        mapped_fks: List[ForeignKeySchema] = []
        for fk in self._sorted_foreign_keys(table):
            if fk.referenced_table.lower() in entity_names:
                mapped_fks.append(fk)
            else:
                logger.warning(
                    f"Foreign key '{fk.name}' on '{table.name}' references unmapped table "
                    f"'{fk.referenced_table}'; columns {', '.join(fk.columns)} stay plain fields"
                )

        join_columns: Set[str] = {c.lower() for fk in mapped_fks for c in fk.columns}
        taken: Set[str] = set()

        for column in table.columns:
            column_key = column.name.lower()
            if column_key in join_columns:
                continue

            mapped = self.type_mapper.map_column(column, table.name)
            name = self.naming.unique_name(self.naming.field_name(column.name), taken)
            taken.add(name)

            common = dict(
                name=name,
                column=column.name,
                type=mapped.type,
                length=mapped.length,
                precision=mapped.precision,
                scale=mapped.scale,
                unsigned=column.unsigned,
                default=None if column.default_value is None else str(column.default_value),
                comment=column.comment,
            )

            if column_key in pk_columns:
                strategy, sequence_name = self._generator_strategy(table, column_key)
                entity.identifiers.append(IdentifierMapping(
                    nullable=False,
                    strategy=strategy,
                    sequence_name=sequence_name,
                    **common,
                ))
            else:
                entity.fields.append(FieldMapping(
                    nullable=column.nullable,
                    unique=column.is_unique,
                    **common,
                ))

        for fk in mapped_fks:
            entity.associations.append(self._build_to_one(table, fk, entity_names, taken))

        entity.indexes, entity.unique_constraints = self._build_indexes(table, entity)
        return entity

    def _generator_strategy(self, table: TableSchema, column_key: str) -> Tuple[GeneratorStrategy, Optional[str]]:
        if len(table.primary_key) != 1:
            return GeneratorStrategy.NONE, None

        column = table.get_column(column_key)
        if column is None or not column.auto_increment:
            return GeneratorStrategy.NONE, None
        if column.sequence_name:
            return GeneratorStrategy.SEQUENCE, column.sequence_name
        return GeneratorStrategy.IDENTITY, None

    def _build_to_one(
        self,
        table: TableSchema,
        fk: ForeignKeySchema,
        entity_names: Dict[str, str],
        taken: Set[str]
    ) -> AssociationMapping:
        pk_columns = {c.lower() for c in table.primary_key}
        fk_columns = {c.lower() for c in fk.columns}

        # The FK is the whole key: the row extends its target
        if fk_columns == pk_columns:
            association_type = AssociationType.ONE_TO_ONE
        else:
            association_type = AssociationType.MANY_TO_ONE

        join_columns = []
        for column_name, referenced in zip(fk.columns, fk.referenced_columns):
            column = table.get_column(column_name)
            join_columns.append(JoinColumn(
                name=column_name,
                referenced_column_name=referenced,
                nullable=column.nullable if column is not None else True,
                on_delete=_normalize_action(fk.on_delete),
            ))

        field_name = self.naming.association_field_name(fk.columns[0], taken)
        taken.add(field_name)

        return AssociationMapping(
            type=association_type,
            field_name=field_name,
            target_entity=entity_names[fk.referenced_table.lower()],
            join_columns=join_columns,
            is_identifier=bool(fk_columns & pk_columns),
        )

    def _build_indexes(self, table: TableSchema, entity: EntityMapping) -> Tuple[List[IndexMapping], List[IndexMapping]]:
        pk_columns = [c.lower() for c in table.primary_key]
        indexes: List[IndexMapping] = []
        unique_constraints: List[IndexMapping] = []

        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            if index.is_primary or [c.lower() for c in index.columns] == pk_columns:
                continue

            mapping = IndexMapping(columns=list(index.columns), name=_anonymous_index_name(index.name))
            if index.is_partial:
                # A predicate cannot be mapped, and a partial UNIQUE is not table-wide
                logger.warning(
                    f"Index '{index.name}' on '{table.name}' is partial; "
                    "its predicate is dropped and it is mapped as a plain index"
                )
                indexes.append(mapping)
            elif index.is_unique:
                unique_constraints.append(mapping)
                if len(index.columns) == 1:
                    field_mapping = entity.get_field_by_column(index.columns[0])
                    if field_mapping is not None:
                        field_mapping.unique = True
            else:
                indexes.append(mapping)

        return indexes, unique_constraints

    def _add_many_to_many(
        self,
        junction: TableSchema,
        entities: Dict[str, EntityMapping],
        entity_names: Dict[str, str]
    ) -> None:
        """Attach the owning side of a junction table to the entity its first column references"""
        first_column = junction.columns[0].name.lower()
        owning_fk, inverse_fk = junction.foreign_keys
        if first_column not in {c.lower() for c in owning_fk.columns}:
            owning_fk, inverse_fk = inverse_fk, owning_fk

        owner = entities.get(owning_fk.referenced_table.lower())
        if owner is None:
            return

        field_name = self.naming.collection_field_name(inverse_fk.columns[0], owner.attribute_names)

        owner.associations.append(AssociationMapping(
            type=AssociationType.MANY_TO_MANY,
            field_name=field_name,
            target_entity=entity_names[inverse_fk.referenced_table.lower()],
            join_table=JoinTable(
                name=junction.name,
                join_columns=[
                    JoinColumn(name=col, referenced_column_name=ref, nullable=False,
                               on_delete=_normalize_action(owning_fk.on_delete))
                    for col, ref in zip(owning_fk.columns, owning_fk.referenced_columns)
                ],
                inverse_join_columns=[
                    JoinColumn(name=col, referenced_column_name=ref, nullable=False,
                               on_delete=_normalize_action(inverse_fk.on_delete))
                    for col, ref in zip(inverse_fk.columns, inverse_fk.referenced_columns)
                ],
            ),
        ))
