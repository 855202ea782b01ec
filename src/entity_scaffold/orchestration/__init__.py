"""
Orchestration Package for Entity Scaffold
Coordinates the mapping-import and mapping-convert workflows
"""
from .pipeline import (
    ReverseEngineeringPipeline,
    ModuleLayout,
    ImportResult,
    ConvertResult,
    MappingInfo,
    PipelineBuilder,
    create_pipeline,
)

__all__ = [
    "ReverseEngineeringPipeline",
    "ModuleLayout",
    "ImportResult",
    "ConvertResult",
    "MappingInfo",
    "PipelineBuilder",
    "create_pipeline",
]
