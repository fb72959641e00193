"""Code generation module for reefgen.

This module provides the generation engine that turns an OpenAPI 3.0
document into a typed Python client package.

Main Components:
    - ReferenceResolver: Resolves ``$ref`` references and finds reference cycles
    - SchemaComposer: Normalizes raw schemas (allOf, oneOf/anyOf, nullable)
    - TypeMapper: Maps canonical schemas to existing or generated types
    - OperationBuilder: Extracts operations, parameters, bodies and responses
    - CodeGenerator: Builds the models and client module ASTs
    - CodeEmitter: Renders and writes generated modules

Example:
    >>> from reefgen.codegen import Document, generate_modules
    >>>
    >>> result = generate_modules(Document.from_mapping(spec))
    >>> result.sources()['models']
"""

from reefgen.codegen.ast_utils import ImportCollector
from reefgen.codegen.codegen import Codegen, GenerationResult, generate_modules
from reefgen.codegen.composer import SchemaComposer
from reefgen.codegen.diagnostics import (
    Diagnostic,
    DiagnosticKind,
    DiagnosticsReport,
    Outcome,
    Severity,
)
from reefgen.codegen.document import Document, DocumentNode
from reefgen.codegen.emitter import CodeEmitter, FileEmitter, StringEmitter
from reefgen.codegen.generator import CodeGenerator
from reefgen.codegen.operations import OperationBuilder
from reefgen.codegen.overrides import OverrideTable
from reefgen.codegen.schema_loader import SchemaLoader
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.codegen.type_mapper import TypeMapper

__all__ = [
    # Pipeline
    'Codegen',
    'GenerationResult',
    'generate_modules',
    # Stages
    'Document',
    'DocumentNode',
    'SchemaLoader',
    'ReferenceResolver',
    'SchemaComposer',
    'TypeMapper',
    'OverrideTable',
    'OperationBuilder',
    'CodeGenerator',
    # Emitters
    'CodeEmitter',
    'FileEmitter',
    'StringEmitter',
    'ImportCollector',
    # Diagnostics
    'Diagnostic',
    'DiagnosticKind',
    'DiagnosticsReport',
    'Outcome',
    'Severity',
]
