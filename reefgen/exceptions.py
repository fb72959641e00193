"""Custom exceptions for reefgen.

This module defines a hierarchy of exceptions used throughout the reefgen
library. Conditions that are recoverable by policy are normally carried as
diagnostics (see ``reefgen.codegen.diagnostics``); the exceptions below are
raised where a unit of work (a schema, an operation, a whole run) cannot
continue.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reefgen.codegen.diagnostics import DiagnosticsReport


class ReefgenError(Exception):
    """Base exception for all reefgen errors.

    All exceptions raised by reefgen inherit from this class, making it easy
    to catch all reefgen-related errors with a single except clause.

    Example:
        try:
            codegen.generate()
        except ReefgenError as e:
            print(f"reefgen error: {e}")
    """

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


class SchemaError(ReefgenError):
    """Base exception for document-related errors."""

    pass


class SchemaLoadError(SchemaError):
    """Failed to load an OpenAPI document from a source.

    Attributes:
        source: The source path or URL that failed to load.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, source: str, cause: Exception | None = None):
        self.source = source
        self.cause = cause
        message = f"Failed to load schema from '{source}'"
        if cause:
            message += f': {cause}'
        super().__init__(message)


class SchemaValidationError(SchemaError):
    """The loaded document is not an OpenAPI 3.0 document.

    Attributes:
        source: The source path or URL of the invalid document.
        errors: List of validation error messages.
    """

    def __init__(self, source: str, errors: list[str] | None = None):
        self.source = source
        self.errors = errors or []
        message = f"Schema validation failed for '{source}'"
        if errors:
            message += f': {"; ".join(errors)}'
        super().__init__(message)


class ResolutionError(SchemaError):
    """A reference could not be resolved.

    Attributes:
        reference: The ``$ref`` string that could not be resolved.
        reason: Explanation of why the reference couldn't be resolved.
    """

    def __init__(self, reference: str, reason: str | None = None):
        self.reference = reference
        self.reason = reason
        message = f"Failed to resolve reference '{reference}'"
        if reason:
            message += f': {reason}'
        super().__init__(message)


class Unresolved(ResolutionError):
    """A reference points to a path with no matching node."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(path, 'no node at this path')


class CodeGenerationError(ReefgenError):
    """Base exception for errors raised while building the output.

    Attributes:
        pointer: JSON pointer of the source node being processed, if known.
    """

    def __init__(self, message: str, pointer: str | None = None):
        self.pointer = pointer
        if pointer:
            message = f'{message} (at {pointer})'
        super().__init__(message)


class CompositionConflict(CodeGenerationError):
    """Two ``allOf`` branches define one field with incompatible shapes.

    Attributes:
        field: Name of the conflicting field.
        first: Human readable form of the first shape.
        second: Human readable form of the second shape.
    """

    def __init__(
        self, field: str, first: str, second: str, pointer: str | None = None
    ):
        self.field = field
        self.first = first
        self.second = second
        super().__init__(
            f"Field '{field}' is defined as {first} and as {second} in allOf branches",
            pointer,
        )


class NameCollision(CodeGenerationError):
    """Two different schemas produced the same generated name.

    Attributes:
        name: The colliding name.
        first: Pointer or description of the schema that claimed the name first.
        second: Pointer or description of the schema that collided with it.
    """

    def __init__(self, name: str, first: str, second: str):
        self.name = name
        self.first = first
        self.second = second
        super().__init__(
            f"Name '{name}' is claimed by '{first}' and by a different schema at '{second}'"
        )


class UnsupportedConstruct(CodeGenerationError):
    """A schema uses a construct the engine does not model.

    Attributes:
        construct: Short description of the construct.
    """

    def __init__(self, construct: str, pointer: str | None = None):
        self.construct = construct
        super().__init__(f'Unsupported construct: {construct}', pointer)


class CycleDetected(CodeGenerationError):
    """A computation requested its own result while still producing it.

    Attributes:
        key: Cache key that closed the cycle.
    """

    def __init__(self, key: object):
        self.key = key
        super().__init__(f'Cycle detected while computing {key!r}')


class SerializationStrategyUnresolvable(CodeGenerationError):
    """A parameter's style/explode combination has no serialization strategy.

    Attributes:
        parameter: Parameter name.
        location: Parameter location (path, query, header, cookie).
        style: Declared or defaulted style.
        explode: Declared or defaulted explode flag.
    """

    def __init__(
        self,
        parameter: str,
        location: str,
        style: str,
        explode: bool,
        reason: str | None = None,
        pointer: str | None = None,
    ):
        self.parameter = parameter
        self.location = location
        self.style = style
        self.explode = explode
        message = (
            f"No serialization strategy for {location} parameter '{parameter}' "
            f'(style={style}, explode={str(explode).lower()})'
        )
        if reason:
            message += f': {reason}'
        super().__init__(message, pointer)


class ConfigurationError(ReefgenError):
    """Error in configuration.

    Attributes:
        config_path: The path to the configuration file, if applicable.
        field: The specific configuration field that is invalid.
    """

    def __init__(
        self, message: str, config_path: str | None = None, field: str | None = None
    ):
        self.config_path = config_path
        self.field = field
        full_message = message
        if config_path:
            full_message = f"{message} in '{config_path}'"
        if field:
            full_message += f' (field: {field})'
        super().__init__(full_message)


class OutputError(ReefgenError):
    """Error writing generated output.

    Attributes:
        output_path: The path where output was being written.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, output_path: str, cause: Exception | None = None):
        self.output_path = output_path
        self.cause = cause
        message = f"Failed to write output to '{output_path}'"
        if cause:
            message += f': {cause}'
        super().__init__(message)


class GenerationFailed(ReefgenError):
    """A generation run finished with at least one fatal diagnostic.

    Attributes:
        report: The complete diagnostics report of the run.
    """

    def __init__(self, report: 'DiagnosticsReport'):
        self.report = report
        errors = report.errors()
        lines = [f'Generation failed with {len(errors)} error(s):']
        lines.extend(f'  - {diagnostic}' for diagnostic in errors)
        super().__init__('\n'.join(lines))
