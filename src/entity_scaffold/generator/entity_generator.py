"""
Entity Code Generator
Renders SQLAlchemy declarative entity modules from mapping metadata
"""
from __future__ import annotations

import json
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from ..config import GeneratorConfig
from ..mapping.models import (
    AssociationMapping,
    AssociationType,
    EntityMapping,
    FieldMapping,
    GeneratorStrategy,
    IdentifierMapping,
    JoinColumn,
)
from ..mapping.naming import NamingStrategy
from ..utils import GenerationError, get_logger

logger = get_logger(__name__)

# mapping type -> (python annotation, module to import for it)
PYTHON_TYPES: Dict[str, Tuple[str, Optional[str]]] = {
    "smallint": ("int", None),
    "integer": ("int", None),
    "bigint": ("int", None),
    "decimal": ("decimal.Decimal", "decimal"),
    "float": ("float", None),
    "string": ("str", None),
    "text": ("str", None),
    "guid": ("uuid.UUID", "uuid"),
    "binary": ("bytes", None),
    "blob": ("bytes", None),
    "boolean": ("bool", None),
    "date": ("datetime.date", "datetime"),
    "time": ("datetime.time", "datetime"),
    "datetime": ("datetime.datetime", "datetime"),
    "datetimetz": ("datetime.datetime", "datetime"),
    "json": ("Any", None),
}

# mapping type -> SQLAlchemy type class
SQLALCHEMY_TYPES: Dict[str, str] = {
    "smallint": "SmallInteger",
    "integer": "Integer",
    "bigint": "BigInteger",
    "decimal": "Numeric",
    "float": "Float",
    "string": "String",
    "text": "Text",
    "guid": "Uuid",
    "binary": "LargeBinary",
    "blob": "LargeBinary",
    "boolean": "Boolean",
    "date": "Date",
    "time": "Time",
    "datetime": "DateTime",
    "datetimetz": "DateTime",
    "json": "JSON",
}

_MAX_FK_DEPTH = 8


def _quote(value: str) -> str:
    """Double-quoted Python string literal"""
    return json.dumps(value)


@dataclass
class GeneratedFile:
    """One rendered source file, relative to the entity directory"""
    name: str
    content: str
    entity_name: Optional[str] = None


@dataclass
class _ModuleImports:
    """Names a generated module needs, grouped the way they are imported"""
    stdlib: Set[str] = field(default_factory=set)
    typing: Set[str] = field(default_factory=set)
    sqlalchemy: Set[str] = field(default_factory=set)
    orm: Set[str] = field(default_factory=set)
    entities: Dict[str, str] = field(default_factory=dict)

    def render(self, base_module: str, base_class: str) -> List[str]:
        stdlib = [f"import {name}" for name in sorted(self.stdlib)]
        if self.typing:
            stdlib.append(f"from typing import {', '.join(sorted(self.typing))}")

        third_party = []
        if self.sqlalchemy:
            third_party.append(f"from sqlalchemy import {', '.join(sorted(self.sqlalchemy))}")
        third_party.append(f"from sqlalchemy.orm import {', '.join(sorted(self.orm))}")

        local = [f"from .{base_module} import {base_class}"]
        if self.entities:
            local.extend(["", "if TYPE_CHECKING:"])
            for class_name, module in sorted(self.entities.items(), key=lambda item: item[1]):
                local.append(f"    from .{module} import {class_name}")

        lines = ["from __future__ import annotations"]
        for group in (stdlib, third_party, local):
            if group:
                lines.append("")
                lines.extend(group)
        return lines


class EntityGenerator:
    """
    Generates one declarative class per entity mapping

    Output layout inside the entity directory:
        base.py           declarative Base class
        <entity>.py       one module per entity
        __init__.py       exports every class
    """

    def __init__(self, config: Optional[GeneratorConfig] = None, naming: Optional[NamingStrategy] = None):
        self.config = config or GeneratorConfig()
        self.naming = naming or NamingStrategy()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def module_names(self, entities: List[EntityMapping]) -> Dict[str, str]:
        """Entity name -> module name, avoiding the base and package modules"""
        taken = {self.config.base_module, "__init__"}
        modules = {}
        for entity in sorted(entities, key=lambda e: e.name):
            module = self.naming.module_name(entity.name)
            if module in taken:
                module = f"{module}_entity"
            module = self.naming.unique_name(module, taken)
            taken.add(module)
            modules[entity.name] = module
        return modules

    def generate(self, entities: List[EntityMapping]) -> List[GeneratedFile]:
        """Render the base module, every entity module and the package module"""
        by_name: Dict[str, EntityMapping] = {}
        for entity in entities:
            if entity.name in by_name:
                raise GenerationError(f"Entity '{entity.name}' is defined twice", entity_name=entity.name)
            by_name[entity.name] = entity

        modules = self.module_names(entities)

        files = [GeneratedFile(name=f"{self.config.base_module}.py", content=self.render_base())]
        for entity in sorted(entities, key=lambda e: e.name):
            content = self.render_entity(entity, by_name, modules)
            files.append(GeneratedFile(name=f"{modules[entity.name]}.py", content=content, entity_name=entity.name))
        files.append(GeneratedFile(name="__init__.py", content=self.render_package(modules)))

        for generated in files:
            self._check_syntax(generated)
        return files

    def write(
        self,
        entities: List[EntityMapping],
        directory: Union[str, Path],
        overwrite: bool = False,
        backup: bool = False
    ) -> Tuple[List[Path], List[Path]]:
        """
        Generate and write entity sources into a directory

        Returns:
            Tuple of (written paths, skipped paths)
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        written: List[Path] = []
        skipped: List[Path] = []

        for generated in self.generate(entities):
            path = directory / generated.name
            if path.exists():
                if not overwrite:
                    logger.info(f"Keeping existing file {path}")
                    skipped.append(path)
                    continue
                if backup:
                    backup_path = path.with_name(path.name + "~")
                    shutil.copy2(path, backup_path)
                    logger.debug(f"Backed up {path} to {backup_path}")

            path.write_text(generated.content, encoding="utf-8")
            written.append(path)

        return written, skipped

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _docstring(self, title: str) -> List[str]:
        lines = ['"""', title]
        if self.config.header_comment:
            lines.extend(["", self.config.header_comment])
        lines.append('"""')
        return lines

    def render_base(self) -> str:
        lines = self._docstring("Declarative base shared by the entity classes.")
        lines.extend([
            "from sqlalchemy.orm import DeclarativeBase",
            "",
            "",
            f"class {self.config.base_class}(DeclarativeBase):",
            "    pass",
            "",
        ])
        return "\n".join(lines)

    def render_package(self, modules: Dict[str, str]) -> str:
        lines = self._docstring("Entity classes.")
        lines.append(f"from .{self.config.base_module} import {self.config.base_class}")
        for class_name, module in sorted(modules.items(), key=lambda item: item[1]):
            lines.append(f"from .{module} import {class_name}")
        lines.extend(["", "__all__ = ["])
        for name in [self.config.base_class] + sorted(modules):
            lines.append(f"    {_quote(name)},")
        lines.extend(["]", ""])
        return "\n".join(lines)

    def render_entity(
        self,
        entity: EntityMapping,
        by_name: Dict[str, EntityMapping],
        modules: Dict[str, str]
    ) -> str:
        """Render the module holding one entity class"""
        renderer = _EntityRenderer(self, entity, by_name, modules)
        return renderer.render()

    @staticmethod
    def _check_syntax(generated: GeneratedFile) -> None:
        try:
            compile(generated.content, generated.name, "exec")
        except SyntaxError as e:
            raise GenerationError(
                f"Generated source for {generated.name} is not valid Python: {e}",
                entity_name=generated.entity_name,
                original_error=e,
            ) from e


class _EntityRenderer:
    """Renders a single entity module; holds the per-module import state"""

    def __init__(
        self,
        generator: EntityGenerator,
        entity: EntityMapping,
        by_name: Dict[str, EntityMapping],
        modules: Dict[str, str]
    ):
        self.generator = generator
        self.config = generator.config
        self.naming = generator.naming
        self.entity = entity
        self.by_name = by_name
        self.modules = modules
        self.imports = _ModuleImports(orm={"Mapped", "mapped_column"})
        self.taken: Set[str] = set(entity.attribute_names)
        # column name (lower) -> attribute name for join columns
        self.join_attributes: Dict[str, str] = {}

    def target(self, assoc: AssociationMapping) -> EntityMapping:
        target = self.by_name.get(assoc.target_entity)
        if target is None:
            raise GenerationError(
                f"Association '{self.entity.name}.{assoc.field_name}' targets unknown entity "
                f"'{assoc.target_entity}'",
                entity_name=self.entity.name,
            )
        return target

    # -- types ---------------------------------------------------------

    def python_type(self, type_name: str) -> str:
        annotation, module = PYTHON_TYPES[type_name]
        if module:
            self.imports.stdlib.add(module)
        if annotation == "Any":
            self.imports.typing.add("Any")
        return annotation

    def sqlalchemy_type(self, mapping: FieldMapping) -> str:
        type_class = SQLALCHEMY_TYPES[mapping.type]
        self.imports.sqlalchemy.add(type_class)

        if mapping.type in ("string", "binary") and mapping.length:
            return f"{type_class}({mapping.length})"
        if mapping.type == "decimal" and mapping.precision is not None:
            if mapping.scale is not None:
                return f"{type_class}({mapping.precision}, {mapping.scale})"
            return f"{type_class}({mapping.precision})"
        if mapping.type == "datetimetz":
            return f"{type_class}(timezone=True)"
        return type_class

    def referenced_field(self, target: EntityMapping, column: str, depth: int = 0) -> Optional[FieldMapping]:
        """Field a foreign key column points at, following identifier associations"""
        found = target.get_field_by_column(column)
        if found is not None or depth >= _MAX_FK_DEPTH:
            return found

        for assoc in target.associations:
            for jc in assoc.join_columns:
                if jc.name.lower() == column.lower():
                    next_target = self.by_name.get(assoc.target_entity)
                    if next_target is not None:
                        return self.referenced_field(next_target, jc.referenced_column_name, depth + 1)
        return None

    # -- columns -------------------------------------------------------

    def annotation(self, type_name: str, nullable: bool) -> str:
        python_type = self.python_type(type_name)
        if nullable and python_type != "Any":
            self.imports.typing.add("Optional")
            return f"Mapped[Optional[{python_type}]]"
        return f"Mapped[{python_type}]"

    def column_options(self, mapping: FieldMapping) -> List[str]:
        options = []
        if mapping.default is not None:
            self.imports.sqlalchemy.add("text")
            options.append(f"server_default=text({_quote(mapping.default)})")
        if mapping.comment:
            options.append(f"comment={_quote(mapping.comment)}")
        return options

    def render_identifier(self, identifier: IdentifierMapping) -> str:
        args = [_quote(identifier.column), self.sqlalchemy_type(identifier)]

        if identifier.strategy == GeneratorStrategy.SEQUENCE and identifier.sequence_name:
            self.imports.sqlalchemy.add("Sequence")
            args.append(f"Sequence({_quote(identifier.sequence_name)})")
        args.append("primary_key=True")

        if identifier.strategy in (GeneratorStrategy.IDENTITY, GeneratorStrategy.SEQUENCE):
            args.append("autoincrement=True")
        elif identifier.strategy == GeneratorStrategy.AUTO:
            args.append('autoincrement="auto"')
        else:
            args.append("autoincrement=False")

        args.extend(self.column_options(identifier))
        annotation = self.annotation(identifier.type, nullable=False)
        return f"    {identifier.name}: {annotation} = mapped_column({', '.join(args)})"

    def render_field(self, mapping: FieldMapping, unique: bool) -> str:
        args = [_quote(mapping.column), self.sqlalchemy_type(mapping)]
        if not mapping.nullable:
            args.append("nullable=False")
        elif PYTHON_TYPES[mapping.type][0] == "Any":
            # Mapped[Any] says nothing about optionality
            args.append("nullable=True")
        if unique:
            args.append("unique=True")
        args.extend(self.column_options(mapping))
        annotation = self.annotation(mapping.type, mapping.nullable)
        return f"    {mapping.name}: {annotation} = mapped_column({', '.join(args)})"

    def join_attribute_name(self, column: str) -> str:
        key = column.lower()
        if key in self.join_attributes:
            return self.join_attributes[key]

        name = self.naming.field_name(column)
        if name in self.taken:
            if not name.endswith("_id"):
                name = f"{name}_id"
            name = self.naming.unique_name(name, self.taken)
        self.taken.add(name)
        self.join_attributes[key] = name
        return name

    def render_join_columns(self, assoc: AssociationMapping, target: EntityMapping) -> List[str]:
        """Foreign key attribute(s) backing a to-one association"""
        lines = []
        single = len(assoc.join_columns) == 1

        for jc in assoc.join_columns:
            key = jc.name.lower()
            if key in self.join_attributes:
                continue
            if self.entity.get_field_by_column(jc.name) is not None:
                raise GenerationError(
                    f"Column '{jc.name}' of '{self.entity.table}' is mapped both as a field "
                    f"and as a join column of '{assoc.field_name}'",
                    entity_name=self.entity.name,
                )

            attribute = self.join_attribute_name(jc.name)
            referenced = self.referenced_field(target, jc.referenced_column_name)
            type_name = referenced.type if referenced is not None else "integer"

            args = [_quote(jc.name)]
            if single:
                self.imports.sqlalchemy.add("ForeignKey")
                fk_args = [_quote(f"{target.table}.{jc.referenced_column_name}")]
                if jc.on_delete:
                    fk_args.append(f"ondelete={_quote(jc.on_delete)}")
                args.append(f"ForeignKey({', '.join(fk_args)})")
            elif referenced is not None:
                args.append(self.sqlalchemy_type(referenced))
            else:
                self.imports.sqlalchemy.add("Integer")
                args.append("Integer")

            if assoc.is_identifier and key in {c.lower() for c in self.entity.identifier_columns}:
                args.append("primary_key=True")
            elif not jc.nullable:
                args.append("nullable=False")

            annotation = self.annotation(type_name, jc.nullable and not assoc.is_identifier)
            lines.append(f"    {attribute}: {annotation} = mapped_column({', '.join(args)})")

        return lines

    # -- table args ----------------------------------------------------

    def table_args(self) -> List[str]:
        args = []
        if self.config.emit_table_args:
            for index in self.entity.indexes:
                self.imports.sqlalchemy.add("Index")
                name = index.name or f"ix_{self.entity.table}_{'_'.join(index.columns)}"
                columns = ", ".join(_quote(c) for c in index.columns)
                args.append(f"Index({_quote(name)}, {columns})")

            for constraint in self.entity.unique_constraints:
                self.imports.sqlalchemy.add("UniqueConstraint")
                parts = [_quote(c) for c in constraint.columns]
                if constraint.name:
                    parts.append(f"name={_quote(constraint.name)}")
                args.append(f"UniqueConstraint({', '.join(parts)})")

        for assoc in self.entity.associations:
            if not assoc.is_to_one or len(assoc.join_columns) < 2:
                continue
            target = self.target(assoc)
            self.imports.sqlalchemy.add("ForeignKeyConstraint")
            local = ", ".join(_quote(jc.name) for jc in assoc.join_columns)
            remote = ", ".join(_quote(f"{target.table}.{jc.referenced_column_name}") for jc in assoc.join_columns)
            parts = [f"[{local}]", f"[{remote}]"]
            on_delete = assoc.join_columns[0].on_delete
            if on_delete:
                parts.append(f"ondelete={_quote(on_delete)}")
            args.append(f"ForeignKeyConstraint({', '.join(parts)})")

        return args

    def column_unique(self, mapping: FieldMapping) -> bool:
        """unique=True on the column unless a table-level constraint already covers it"""
        if not mapping.unique:
            return False
        if not self.config.emit_table_args:
            return True
        column = mapping.column.lower()
        return not any(
            [c.lower() for c in constraint.columns] == [column]
            for constraint in self.entity.unique_constraints
        )

    # -- relationships -------------------------------------------------

    def class_reference(self, target: EntityMapping) -> str:
        if target.name != self.entity.name:
            self.imports.typing.add("TYPE_CHECKING")
            self.imports.entities[target.name] = self.modules[target.name]
        return target.name

    def render_to_one(self, assoc: AssociationMapping, target: EntityMapping, shared_targets: Set[str]) -> str:
        self.imports.orm.add("relationship")
        class_name = self.class_reference(target)
        args = [_quote(target.name)]

        fk_attributes = [self.join_attributes[jc.name.lower()] for jc in assoc.join_columns]
        if target.name in shared_targets:
            args.append(f"foreign_keys=[{', '.join(fk_attributes)}]")

        if target.name == self.entity.name:
            remote = []
            for jc in assoc.join_columns:
                referenced = self.entity.get_field_by_column(jc.referenced_column_name)
                if referenced is not None:
                    remote.append(referenced.name)
            if remote:
                args.append(f"remote_side=[{', '.join(remote)}]")

        if assoc.nullable and not assoc.is_identifier:
            self.imports.typing.add("Optional")
            annotation = f"Mapped[Optional[{class_name}]]"
        else:
            annotation = f"Mapped[{class_name}]"
        return f"    {assoc.field_name}: {annotation} = relationship({', '.join(args)})"

    def junction_variable(self, assoc: AssociationMapping) -> str:
        return f"{self.naming.field_name(assoc.join_table.name)}_table"

    def render_junction_table(self, assoc: AssociationMapping, target: EntityMapping) -> List[str]:
        """Module-level Table() for a many-to-many join table"""
        self.imports.sqlalchemy.update({"Column", "Table"})
        join_table = assoc.join_table
        lines = [f"{self.junction_variable(assoc)} = Table(", f"    {_quote(join_table.name)},",
                 f"    {self.config.base_class}.metadata,"]
        constraints = []

        for side, join_columns in ((self.entity, join_table.join_columns), (target, join_table.inverse_join_columns)):
            if len(join_columns) == 1:
                jc = join_columns[0]
                self.imports.sqlalchemy.add("ForeignKey")
                fk_args = [_quote(f"{side.table}.{jc.referenced_column_name}")]
                if jc.on_delete:
                    fk_args.append(f"ondelete={_quote(jc.on_delete)}")
                lines.append(f"    Column({_quote(jc.name)}, ForeignKey({', '.join(fk_args)}), primary_key=True),")
                continue

            for jc in join_columns:
                referenced = self.referenced_field(side, jc.referenced_column_name)
                if referenced is not None:
                    type_expr = self.sqlalchemy_type(referenced)
                else:
                    self.imports.sqlalchemy.add("Integer")
                    type_expr = "Integer"
                lines.append(f"    Column({_quote(jc.name)}, {type_expr}, primary_key=True),")

            self.imports.sqlalchemy.add("ForeignKeyConstraint")
            local = ", ".join(_quote(jc.name) for jc in join_columns)
            remote = ", ".join(_quote(f"{side.table}.{jc.referenced_column_name}") for jc in join_columns)
            constraints.append(f"    ForeignKeyConstraint([{local}], [{remote}]),")

        lines.extend(constraints)
        lines.append(")")
        return lines

    def _join_condition(self, side: EntityMapping, join_table_name: str, join_columns: List[JoinColumn]) -> str:
        parts = []
        for jc in join_columns:
            referenced = side.get_field_by_column(jc.referenced_column_name)
            attribute = referenced.name if referenced is not None else self.naming.field_name(jc.referenced_column_name)
            parts.append(f"{side.name}.{attribute} == {join_table_name}.c.{jc.name}")
        if len(parts) == 1:
            return parts[0]
        return f"and_({', '.join(parts)})"

    def render_many_to_many(self, assoc: AssociationMapping, target: EntityMapping) -> str:
        self.imports.orm.add("relationship")
        self.imports.typing.add("List")
        class_name = self.class_reference(target)
        args = [_quote(target.name), f"secondary={self.junction_variable(assoc)}"]

        if target.name == self.entity.name:
            join_table = assoc.join_table
            primary = self._join_condition(self.entity, join_table.name, join_table.join_columns)
            secondary = self._join_condition(target, join_table.name, join_table.inverse_join_columns)
            args.append(f"primaryjoin={_quote(primary)}")
            args.append(f"secondaryjoin={_quote(secondary)}")

        return f"    {assoc.field_name}: Mapped[List[{class_name}]] = relationship({', '.join(args)})"

    # -- module --------------------------------------------------------

    def render(self) -> str:
        entity = self.entity
        to_one = [a for a in entity.associations if a.is_to_one]
        to_many = [a for a in entity.associations if not a.is_to_one]
        targets = {a.field_name: self.target(a) for a in entity.associations}

        target_counts: Dict[str, int] = {}
        for assoc in to_one:
            target_counts[assoc.target_entity] = target_counts.get(assoc.target_entity, 0) + 1
        shared_targets = {name for name, count in target_counts.items() if count > 1}

        body: List[str] = []
        for identifier in entity.identifiers:
            body.append(self.render_identifier(identifier))
        for assoc in to_one:
            if assoc.is_identifier:
                body.extend(self.render_join_columns(assoc, targets[assoc.field_name]))
        for mapping in entity.fields:
            body.append(self.render_field(mapping, self.column_unique(mapping)))
        for assoc in to_one:
            if not assoc.is_identifier:
                body.extend(self.render_join_columns(assoc, targets[assoc.field_name]))

        relationships: List[str] = []
        for assoc in to_one:
            relationships.append(self.render_to_one(assoc, targets[assoc.field_name], shared_targets))
        junctions: List[str] = []
        for assoc in to_many:
            target = targets[assoc.field_name]
            junctions.extend(self.render_junction_table(assoc, target))
            junctions.append("")
            junctions.append("")
            relationships.append(self.render_many_to_many(assoc, target))

        table_args = self.table_args()

        class_lines = [f"class {entity.name}({self.config.base_class}):", f"    __tablename__ = {_quote(entity.table)}"]
        if table_args:
            class_lines.append("    __table_args__ = (")
            class_lines.extend(f"        {arg}," for arg in table_args)
            class_lines.append("    )")
        class_lines.append("")
        class_lines.extend(body)
        if relationships:
            class_lines.append("")
            class_lines.extend(relationships)

        lines = self.generator._docstring(f"{entity.name} entity, mapped to table {entity.table}.")
        lines.extend(self.imports.render(self.config.base_module, self.config.base_class))
        lines.extend(["", ""])
        lines.extend(junctions)
        lines.extend(class_lines)
        lines.append("")
        return "\n".join(lines)
