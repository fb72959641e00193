"""reefgen - Generate typed Python clients from OpenAPI 3.0 documents.

reefgen turns an OpenAPI document into a package with pydantic models for
every schema the operations reach and one client class whose methods
serialize parameters, encode bodies and decode responses per status code.
Generated code depends only on ``reefgen.runtime``.

Quick Start:
    >>> from reefgen import Codegen, DocumentConfig
    >>>
    >>> config = DocumentConfig(
    ...     source="https://api.example.com/openapi.json",
    ...     output="./client"
    ... )
    >>> Codegen(config).generate()

CLI Usage:
    $ reefgen generate --config reefgen.yaml
    $ reefgen check ./api.yaml  # Report diagnostics without writing anything
"""

from importlib.metadata import PackageNotFoundError, version

from reefgen.codegen import (
    Codegen,
    Diagnostic,
    DiagnosticKind,
    DiagnosticsReport,
    Document,
    GenerationResult,
    SchemaLoader,
    generate_modules,
)
from reefgen.config import (
    CodegenConfig,
    DocumentConfig,
    GeneratorConfig,
    OverrideConfig,
    get_config,
)
from reefgen.exceptions import (
    CodeGenerationError,
    CompositionConflict,
    ConfigurationError,
    CycleDetected,
    GenerationFailed,
    NameCollision,
    OutputError,
    ReefgenError,
    ResolutionError,
    SchemaError,
    SchemaLoadError,
    SchemaValidationError,
    SerializationStrategyUnresolvable,
    Unresolved,
    UnsupportedConstruct,
)

__all__ = [
    # Main classes
    'Codegen',
    'generate_modules',
    'GenerationResult',
    'Document',
    'SchemaLoader',
    'Diagnostic',
    'DiagnosticKind',
    'DiagnosticsReport',
    # Configuration
    'CodegenConfig',
    'DocumentConfig',
    'GeneratorConfig',
    'OverrideConfig',
    'get_config',
    # Exceptions
    'ReefgenError',
    'SchemaError',
    'SchemaLoadError',
    'SchemaValidationError',
    'ResolutionError',
    'Unresolved',
    'CodeGenerationError',
    'CompositionConflict',
    'NameCollision',
    'UnsupportedConstruct',
    'CycleDetected',
    'SerializationStrategyUnresolvable',
    'ConfigurationError',
    'OutputError',
    'GenerationFailed',
]

try:
    __version__ = version('reefgen')
except PackageNotFoundError:
    __version__ = 'unknown'
