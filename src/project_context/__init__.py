# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Project dependency graph and context cache MCP Server."""

from .analyzer import ProjectAnalyzer
from .cache import AnalysisCache, CacheStatistics
from .config import Config
from .context_tracker import ContextStateTracker, FileRelationships, ProjectContext
from .models import (
    BrokenRelationship,
    ContextState,
    DependencyRelationship,
    Layer,
    ProjectAnalysis,
    ProjectStack,
    ProjectStructure,
    RelationshipType,
)
from .relationship_resolver import ImportExtractor, RelationshipResolver
from .relationship_validator import RelationshipValidator
from .service import AnalyzeResult, ProjectContextService, format_analysis
from .stack_detector import StackDetector
from .storage import InMemoryStore, JsonFileStore, KeyValueStore
from .structure_mapper import StructureMapper

__version__ = "0.1.0"

__all__ = [
    "AnalysisCache",
    "AnalyzeResult",
    "BrokenRelationship",
    "CacheStatistics",
    "Config",
    "ContextState",
    "ContextStateTracker",
    "DependencyRelationship",
    "FileRelationships",
    "ImportExtractor",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "Layer",
    "ProjectAnalysis",
    "ProjectAnalyzer",
    "ProjectContext",
    "ProjectContextService",
    "ProjectStack",
    "ProjectStructure",
    "RelationshipResolver",
    "RelationshipType",
    "RelationshipValidator",
    "StackDetector",
    "StructureMapper",
    "format_analysis",
]

# Conditional import for MCP server (requires the mcp package)
try:
    from .mcp_server import ProjectContextMCPServer

    __all__.append("ProjectContextMCPServer")
except ImportError:
    # MCP package not available
    pass
