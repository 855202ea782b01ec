"""
Mapping Drivers Package
Persist entity mappings as XML or YAML files
"""
from .base import (
    BaseMappingDriver,
    MappingDriverRegistry,
    detect_formats,
    get_driver,
    register_driver,
    validate_entity,
)

# Import drivers to register them
from .xml_driver import XmlMappingDriver
from .yaml_driver import YamlMappingDriver


def get_supported_formats() -> list:
    """Get list of supported mapping formats"""
    return MappingDriverRegistry.get_supported_formats()


__all__ = [
    "BaseMappingDriver",
    "MappingDriverRegistry",
    "detect_formats",
    "get_driver",
    "register_driver",
    "validate_entity",
    "XmlMappingDriver",
    "YamlMappingDriver",
    "get_supported_formats",
]
