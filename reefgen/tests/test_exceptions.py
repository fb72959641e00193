"""Test suite for reefgen exceptions and diagnostics."""

import pytest

from reefgen.codegen.diagnostics import Diagnostic, DiagnosticKind, DiagnosticsReport, Outcome, Severity
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


class TestReefgenError:
    """Tests for the base ReefgenError exception."""

    def test_basic_message(self):
        """Test that the error stores the message."""
        error = ReefgenError('Something went wrong')
        assert error.message == 'Something went wrong'
        assert str(error) == 'Something went wrong'

    @pytest.mark.parametrize(
        'error',
        [
            SchemaLoadError('api.yaml'),
            SchemaValidationError('api.yaml'),
            Unresolved('#/components/schemas/X'),
            CompositionConflict('x', 'string', 'integer'),
            NameCollision('Pet', 'a', 'b'),
            UnsupportedConstruct('not'),
            CycleDetected('key'),
            ConfigurationError('bad'),
            OutputError('/tmp/x'),
        ],
    )
    def test_hierarchy(self, error):
        """Test that every error can be caught as ReefgenError."""
        assert isinstance(error, ReefgenError)


class TestSchemaErrors:
    """Tests for document loading and resolution errors."""

    def test_load_error_with_cause(self):
        """Test that the cause is part of the message."""
        cause = FileNotFoundError('missing')
        error = SchemaLoadError('api.yaml', cause)

        assert error.source == 'api.yaml'
        assert error.cause is cause
        assert str(error) == "Failed to load schema from 'api.yaml': missing"

    def test_validation_error_lists_errors(self):
        """Test that validation errors are joined."""
        error = SchemaValidationError('api.yaml', ['no openapi field', 'no info'])

        assert error.errors == ['no openapi field', 'no info']
        assert str(error).endswith(': no openapi field; no info')
        assert isinstance(error, SchemaError)

    def test_unresolved(self):
        """Test that Unresolved is a ResolutionError carrying the path."""
        error = Unresolved('#/components/schemas/Missing')

        assert isinstance(error, ResolutionError)
        assert error.path == '#/components/schemas/Missing'
        assert error.reference == '#/components/schemas/Missing'
        assert 'no node at this path' in str(error)


class TestCodeGenerationErrors:
    """Tests for errors raised while building output."""

    def test_pointer_in_message(self):
        """Test that a pointer is appended to the message."""
        error = CodeGenerationError('broken', '/paths/~1pets')

        assert error.pointer == '/paths/~1pets'
        assert str(error) == 'broken (at /paths/~1pets)'

    def test_composition_conflict(self):
        """Test the attributes of a composition conflict."""
        error = CompositionConflict('x', 'string', 'integer', '/components/schemas/C')

        assert (error.field, error.first, error.second) == ('x', 'string', 'integer')
        assert "Field 'x'" in str(error)

    def test_serialization_strategy_unresolvable(self):
        """Test the message of an unresolvable style combination."""
        error = SerializationStrategyUnresolvable('sort', 'query', 'deepObject', False, 'needs explode')

        assert error.style == 'deepObject'
        assert not error.explode
        assert str(error) == (
            "No serialization strategy for query parameter 'sort' "
            '(style=deepObject, explode=false): needs explode'
        )


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_with_path_and_field(self):
        """Test that path and field are part of the message."""
        error = ConfigurationError('Invalid value', config_path='reefgen.yaml', field='workers')

        assert str(error) == "Invalid value in 'reefgen.yaml' (field: workers)"


class TestDiagnostics:
    """Tests for diagnostics and the report."""

    def test_from_exception_moves_pointer(self):
        """Test that the pointer is not repeated in the message."""
        diagnostic = Diagnostic.from_exception(
            DiagnosticKind.UNSUPPORTED_CONSTRUCT, UnsupportedConstruct('not', '/components/schemas/X')
        )

        assert diagnostic.severity is Severity.ERROR
        assert diagnostic.pointer == '/components/schemas/X'
        assert diagnostic.message == 'Unsupported construct: not'
        assert str(diagnostic) == 'error[unsupported-construct] at /components/schemas/X: Unsupported construct: not'

    def test_report_deduplicates(self):
        """Test that a diagnostic reached twice is reported once, in first-seen order."""
        first = Diagnostic.warning(DiagnosticKind.UNKNOWN_FORMAT, 'unknown format', '/a')
        second = Diagnostic.error(DiagnosticKind.UNRESOLVED, 'missing', '/b')

        report = DiagnosticsReport([first, second, first])

        assert list(report) == [first, second]
        assert report.failed
        assert report.errors() == [second]
        assert report.warnings() == [first]

    def test_warnings_do_not_fail(self):
        """Test that a report with warnings only has not failed."""
        report = DiagnosticsReport([Diagnostic.warning(DiagnosticKind.UNKNOWN_FORMAT, 'x')])

        assert not report.failed

    def test_outcome(self):
        """Test attaching diagnostics to an outcome."""
        outcome = Outcome(1).with_diagnostics([Diagnostic.error(DiagnosticKind.UNRESOLVED, 'x')])

        assert outcome.value == 1
        assert outcome.has_errors

    def test_generation_failed_lists_errors(self):
        """Test that GenerationFailed summarizes every error."""
        report = DiagnosticsReport(
            [
                Diagnostic.error(DiagnosticKind.UNRESOLVED, 'missing', '/b'),
                Diagnostic.warning(DiagnosticKind.UNKNOWN_FORMAT, 'unknown format', '/a'),
            ]
        )

        error = GenerationFailed(report)

        assert error.report is report
        assert str(error).splitlines() == [
            'Generation failed with 1 error(s):',
            '  - error[unresolved] at /b: missing',
        ]
