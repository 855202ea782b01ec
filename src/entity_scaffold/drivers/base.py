"""
Base Mapping Driver Module
Defines the interface for persisting EntityMapping objects as mapping files
"""
from __future__ import annotations

import keyword
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from ..config import MappingFormat
from ..mapping.models import EntityMapping
from ..mapping.types import MAPPING_TYPES
from ..utils import MappingFileError, get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def parse_bool(value: Any, source: Optional[str] = None, default: bool = False) -> bool:
    """Read a boolean written as a native value or as text"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise MappingFileError(f"Expected a boolean, got '{value}'", file_path=source)


def parse_int(value: Any, source: Optional[str] = None) -> Optional[int]:
    """Read an optional integer written as a native value or as text"""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MappingFileError(f"Expected an integer, got '{value}'", file_path=source, original_error=e) from e


def validate_entity(entity: EntityMapping, source: Optional[str] = None) -> EntityMapping:
    """Reject mappings the entity generator cannot work with"""
    if not entity.name or not entity.name.isidentifier() or keyword.iskeyword(entity.name):
        raise MappingFileError(f"Invalid entity name '{entity.name}'", file_path=source)
    if not entity.table:
        raise MappingFileError(f"Entity '{entity.name}' has no table", file_path=source)
    if not entity.identifier_columns:
        raise MappingFileError(f"Entity '{entity.name}' declares no identifier", file_path=source)

    for mapping in list(entity.identifiers) + list(entity.fields):
        if mapping.type not in MAPPING_TYPES:
            raise MappingFileError(
                f"Field '{entity.name}.{mapping.name}' has unknown type '{mapping.type}'",
                file_path=source,
            )

    seen = set()
    for name in entity.attribute_names:
        if not name.isidentifier() or keyword.iskeyword(name):
            raise MappingFileError(f"Invalid attribute name '{entity.name}.{name}'", file_path=source)
        if name in seen:
            raise MappingFileError(f"Attribute '{entity.name}.{name}' is declared twice", file_path=source)
        seen.add(name)

    for assoc in entity.associations:
        if assoc.is_to_one and not assoc.join_columns:
            raise MappingFileError(
                f"Association '{entity.name}.{assoc.field_name}' has no join columns", file_path=source
            )
        if not assoc.is_to_one and assoc.join_table is None:
            raise MappingFileError(
                f"Association '{entity.name}.{assoc.field_name}' has no join table", file_path=source
            )

    return entity


class BaseMappingDriver(ABC):
    """
    Abstract base class for mapping file drivers

    A driver owns one file format: it turns an EntityMapping into text and
    back, and knows which files in a directory belong to it.
    """

    @property
    @abstractmethod
    def format(self) -> MappingFormat:
        """Return the mapping format"""
        pass

    @property
    @abstractmethod
    def extension(self) -> str:
        """File name suffix, including the leading dot"""
        pass

    @abstractmethod
    def dump(self, entity: EntityMapping) -> str:
        """Serialize one entity mapping"""
        pass

    @abstractmethod
    def load(self, text: str, source: Optional[str] = None) -> EntityMapping:
        """Parse one entity mapping"""
        pass

    def file_name(self, entity_name: str) -> str:
        return f"{entity_name}{self.extension}"

    def list_files(self, directory: PathLike) -> List[Path]:
        """Mapping files of this format in a directory, sorted by name"""
        directory = Path(directory)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(self.extension))

    def write(self, entity: EntityMapping, directory: PathLike, overwrite: bool = False) -> Tuple[Path, bool]:
        """
        Write an entity mapping into a directory

        Returns:
            Tuple of (path, written); an existing file is left untouched
            unless overwrite is set
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.file_name(entity.name)

        if path.exists() and not overwrite:
            logger.info(f"Keeping existing mapping file {path}")
            return path, False

        path.write_text(self.dump(entity), encoding="utf-8")
        logger.debug(f"Wrote mapping file {path}")
        return path, True

    def read(self, path: PathLike) -> EntityMapping:
        """Read and validate one mapping file"""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise MappingFileError(f"Cannot read file: {e}", file_path=str(path), original_error=e) from e
        return validate_entity(self.load(text, source=str(path)), source=str(path))

    def read_directory(self, directory: PathLike) -> List[EntityMapping]:
        """Read every mapping file of this format in a directory"""
        entities: List[EntityMapping] = []
        origins: Dict[str, Path] = {}

        for path in self.list_files(directory):
            entity = self.read(path)
            if entity.name in origins:
                raise MappingFileError(
                    f"Entity '{entity.name}' is already defined in {origins[entity.name].name}",
                    file_path=str(path),
                )
            origins[entity.name] = path
            entities.append(entity)

        return entities


# Type alias for driver classes
DriverClass = Type[BaseMappingDriver]


class MappingDriverRegistry:
    """Registry for mapping drivers using Factory pattern"""

    _drivers: Dict[MappingFormat, DriverClass] = {}
    _lock = threading.Lock()

    @classmethod
    def register(cls, mapping_format: MappingFormat, driver_class: DriverClass) -> None:
        """Register a mapping driver class"""
        with cls._lock:
            cls._drivers[mapping_format] = driver_class

    @classmethod
    def create_driver(cls, mapping_format: Union[MappingFormat, str]) -> BaseMappingDriver:
        """Create driver instance for a format"""
        try:
            mapping_format = MappingFormat(mapping_format)
        except ValueError as e:
            raise ValueError(f"Unknown mapping format: {mapping_format}") from e

        with cls._lock:
            if mapping_format not in cls._drivers:
                raise ValueError(f"No driver registered for mapping format: {mapping_format.value}")
            driver_class = cls._drivers[mapping_format]
        return driver_class()

    @classmethod
    def get_supported_formats(cls) -> List[MappingFormat]:
        """Get list of supported mapping formats"""
        with cls._lock:
            return list(cls._drivers.keys())


def register_driver(mapping_format: MappingFormat):
    """Decorator to register a mapping driver class"""
    def decorator(cls: DriverClass) -> DriverClass:
        MappingDriverRegistry.register(mapping_format, cls)
        return cls
    return decorator


def get_driver(mapping_format: Union[MappingFormat, str]) -> BaseMappingDriver:
    """Driver for a mapping format"""
    return MappingDriverRegistry.create_driver(mapping_format)


def detect_formats(directory: PathLike) -> Dict[str, List[str]]:
    """
    Mapping files present in a directory, grouped by format

    Returns:
        Mapping of format name to file names; formats with no files are omitted
    """
    found: Dict[str, List[str]] = {}
    for mapping_format in MappingDriverRegistry.get_supported_formats():
        files = get_driver(mapping_format).list_files(directory)
        if files:
            found[mapping_format.value] = [p.name for p in files]
    return found
