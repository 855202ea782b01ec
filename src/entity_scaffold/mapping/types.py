"""
SQL Type Mapping

Translates vendor column types (``varchar(100)``, ``timestamp with time zone``,
``tinyint(1)``...) into the portable mapping types stored in mapping files.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from ..adapters.base import ColumnSchema
from ..utils import ConfigurationError, UnsupportedColumnTypeError

# Portable mapping types understood by the entity generator
MAPPING_TYPES = frozenset({
    "smallint",
    "integer",
    "bigint",
    "decimal",
    "float",
    "string",
    "text",
    "guid",
    "binary",
    "blob",
    "boolean",
    "date",
    "time",
    "datetime",
    "datetimetz",
    "json",
})

SQL_TYPE_MAP: Dict[str, str] = {
    # Integers
    "tinyint": "smallint",
    "smallint": "smallint",
    "int2": "smallint",
    "smallserial": "smallint",
    "year": "smallint",
    "mediumint": "integer",
    "int": "integer",
    "integer": "integer",
    "int4": "integer",
    "serial": "integer",
    "bigint": "bigint",
    "int8": "bigint",
    "bigserial": "bigint",
    # Exact and approximate numerics
    "decimal": "decimal",
    "dec": "decimal",
    "numeric": "decimal",
    "money": "decimal",
    "float": "float",
    "float4": "float",
    "float8": "float",
    "real": "float",
    "double": "float",
    "double precision": "float",
    # Strings
    "char": "string",
    "character": "string",
    "nchar": "string",
    "bpchar": "string",
    "varchar": "string",
    "character varying": "string",
    "nvarchar": "string",
    "citext": "text",
    "text": "text",
    "tinytext": "text",
    "mediumtext": "text",
    "longtext": "text",
    "clob": "text",
    # Binary
    "binary": "binary",
    "varbinary": "binary",
    "blob": "blob",
    "tinyblob": "blob",
    "mediumblob": "blob",
    "longblob": "blob",
    "bytea": "blob",
    # Others
    "uuid": "guid",
    "boolean": "boolean",
    "bool": "boolean",
    "bit": "boolean",
    "date": "date",
    "time": "time",
    "time without time zone": "time",
    "time with time zone": "time",
    "datetime": "datetime",
    "timestamp": "datetime",
    "timestamp without time zone": "datetime",
    "timestamp with time zone": "datetimetz",
    "timestamptz": "datetimetz",
    "json": "json",
    "jsonb": "json",
}

LENGTH_TYPES = frozenset({"string", "binary"})

_TYPE_RE = re.compile(r"^\s*(?P<name>[a-zA-Z_][\w ]*?)\s*(?:\((?P<args>[^)]*)\))?(?P<suffix>(?:\s+[a-zA-Z ]*)?)$")
_IGNORED_MODIFIERS = {"unsigned", "signed", "zerofill"}


@dataclass
class MappedType:
    """Mapping type plus the size attributes that apply to it"""
    type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None


def _coerce_arg(value: str) -> Union[int, str]:
    value = value.strip()
    try:
        return int(value)
    except ValueError:
        return value


def parse_sql_type(sql_type: str) -> Tuple[str, List[Union[int, str]]]:
    """
    Split a declared SQL type into its normalized base name and arguments

    >>> parse_sql_type("VARCHAR(100)")
    ('varchar', [100])
    >>> parse_sql_type("timestamp(3) with time zone")
    ('timestamp with time zone', [3])
    """
    match = _TYPE_RE.match(sql_type or "")
    if not match:
        # enum('a','b') and friends: keep the bare name, drop the value list
        name = (sql_type or "").split("(", 1)[0]
        return " ".join(name.lower().split()), []

    words = match.group("name").lower().split()
    words.extend(
        word for word in match.group("suffix").lower().split()
        if word not in _IGNORED_MODIFIERS
    )
    args = match.group("args")
    parsed_args = [_coerce_arg(arg) for arg in args.split(",")] if args else []
    return " ".join(words), parsed_args


class TypeMapper:
    """Maps catalog columns to mapping types, honouring configured overrides"""

    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self.overrides = {k.lower(): v.lower() for k, v in (overrides or {}).items()}
        for sql_type, mapping_type in self.overrides.items():
            if mapping_type not in MAPPING_TYPES:
                raise ConfigurationError(
                    f"Type override '{sql_type}' -> '{mapping_type}' targets an unknown mapping type; "
                    f"expected one of: {', '.join(sorted(MAPPING_TYPES))}",
                    config_key="type_overrides",
                )

    def resolve(self, sql_type: str, table_name: Optional[str] = None,
                column_name: Optional[str] = None) -> Tuple[str, List[Union[int, str]]]:
        """Return (mapping_type, type_arguments) for a declared SQL type"""
        base, args = parse_sql_type(sql_type)

        if base in self.overrides:
            return self.overrides[base], args
        if base == "tinyint" and args == [1]:
            return "boolean", args
        if base in SQL_TYPE_MAP:
            return SQL_TYPE_MAP[base], args

        raise UnsupportedColumnTypeError(base or sql_type, table_name=table_name, column_name=column_name)

    def map_column(self, column: ColumnSchema, table_name: Optional[str] = None) -> MappedType:
        """Map a catalog column to a MappedType"""
        mapping_type, args = self.resolve(column.data_type, table_name, column.name)
        int_args = [arg for arg in args if isinstance(arg, int)]

        mapped = MappedType(type=mapping_type)

        if mapping_type in LENGTH_TYPES:
            if column.max_length:
                mapped.length = int(column.max_length)
            elif int_args:
                mapped.length = int_args[0]
        elif mapping_type == "decimal":
            if column.precision is not None:
                mapped.precision = int(column.precision)
            elif int_args:
                mapped.precision = int_args[0]
            if column.scale is not None:
                mapped.scale = int(column.scale)
            elif len(int_args) > 1:
                mapped.scale = int_args[1]

        return mapped
