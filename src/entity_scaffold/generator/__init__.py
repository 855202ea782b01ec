"""
Entity Generator Package
Renders entity source modules from mapping metadata
"""
from .entity_generator import (
    EntityGenerator,
    GeneratedFile,
    PYTHON_TYPES,
    SQLALCHEMY_TYPES,
)

__all__ = [
    "EntityGenerator",
    "GeneratedFile",
    "PYTHON_TYPES",
    "SQLALCHEMY_TYPES",
]
