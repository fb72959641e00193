"""Code generation pipeline for reefgen.

This module provides ``generate_modules``, the pure function from a
``Document`` and a configuration to generated modules plus diagnostics, and
the ``Codegen`` class that wraps loading a document, running the pipeline
and writing the result.

Stages run one after another over complete outputs:

1. component schemas are resolved (in parallel),
2. overrides are compiled,
3. operations are collected (in parallel),
4. the reference graph is analysed; an unresolved reference stops here,
5. schemas are mapped to types (sequentially, in document order),
6. declarations and the client are generated.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field

from reefgen.codegen.diagnostics import Diagnostic, DiagnosticKind, DiagnosticsReport, Outcome
from reefgen.codegen.document import Document
from reefgen.codegen.emitter import CodeEmitter, FileEmitter, StringEmitter
from reefgen.codegen.generator import CodeGenerator
from reefgen.codegen.ir import GeneratedModule, Operation
from reefgen.codegen.operations import OperationBuilder, OperationDraft
from reefgen.codegen.overrides import OverrideTable
from reefgen.codegen.schema_loader import SchemaLoader
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.codegen.type_mapper import TypeMapper
from reefgen.config import DocumentConfig, GeneratorConfig
from reefgen.exceptions import (
    GenerationFailed,
    NameCollision,
    ResolutionError,
    SerializationStrategyUnresolvable,
    UnsupportedConstruct,
)

logger = logging.getLogger(__name__)

__all__ = ['GenerationResult', 'GenerationRun', 'generate_modules', 'Codegen']


@dataclass
class GenerationResult:
    """Generated modules together with every diagnostic of the run."""

    modules: list[GeneratedModule] = field(default_factory=list)
    report: DiagnosticsReport = field(default_factory=DiagnosticsReport)

    @property
    def failed(self) -> bool:
        return self.report.failed

    def sources(self) -> dict[str, str]:
        """Render every module to source, keyed by module name."""
        emitter = StringEmitter()
        emitter.emit_package(self.modules)
        return emitter.get_all_modules()


def _pointer(path: str) -> str:
    return path[1:] if path.startswith('#') else path


class GenerationRun:
    """State of one pipeline run over one document."""

    def __init__(
        self,
        document: Document,
        config: GeneratorConfig,
        executor: Executor,
        base_url: str | None = None,
    ):
        self.document = document
        self.config = config
        self.executor = executor
        self.base_url = base_url
        self.report = DiagnosticsReport()
        self.resolver = ReferenceResolver(document, config)
        self.builder = OperationBuilder(document, self.resolver, config)

    def run(self) -> GenerationResult:
        """Run every stage.

        Raises:
            ConfigurationError: If the override set is invalid.
        """
        self.resolve_components()
        overrides = OverrideTable.compile(self.config, self.resolver)
        drafts = self.collect_operations()
        self.analyze(drafts)

        if self.report.of_kind(DiagnosticKind.UNRESOLVED):
            logger.error('Unresolved references found; skipping code generation')
            return GenerationResult([], self.report)

        mapper = TypeMapper(self.resolver, overrides, self.config)
        operations = self.bind(drafts, mapper)
        return GenerationResult(self.generate(mapper, operations), self.report)

    def resolve_components(self) -> None:
        def resolve(path: str) -> tuple[Diagnostic, ...]:
            try:
                return self.resolver.resolve_path(path).diagnostics
            except ResolutionError as e:
                return (Diagnostic.from_exception(DiagnosticKind.UNRESOLVED, e, _pointer(path)),)

        paths = self.document.component_schema_paths()
        for diagnostics in self.executor.map(resolve, paths):
            self.report.extend(diagnostics)
        logger.debug(f'Resolved {len(paths)} component schema(s)')

    def collect_operations(self) -> list[OperationDraft]:
        try:
            items = list(self.builder.operations())
        except ResolutionError as e:
            self.report.add(Diagnostic.from_exception(DiagnosticKind.UNRESOLVED, e, '/paths'))
            return []

        def dropped(kind: DiagnosticKind, error: Exception, pointer: str) -> Outcome[None]:
            pointer = getattr(error, 'pointer', None) or pointer
            return Outcome(None, (Diagnostic.from_exception(kind, error, pointer),))

        def collect(item) -> Outcome[OperationDraft | None]:
            pointer = item[2].pointer
            try:
                return self.builder.collect(*item)
            except ResolutionError as e:
                return dropped(DiagnosticKind.UNRESOLVED, e, pointer)
            except SerializationStrategyUnresolvable as e:
                return dropped(DiagnosticKind.SERIALIZATION_STRATEGY_UNRESOLVABLE, e, pointer)
            except UnsupportedConstruct as e:
                return dropped(DiagnosticKind.UNSUPPORTED_CONSTRUCT, e, pointer)

        drafts = []
        for outcome in self.executor.map(collect, items):
            self.report.extend(outcome.diagnostics)
            if outcome.value is not None:
                drafts.append(outcome.value)
        logger.debug(f'Collected {len(drafts)} of {len(items)} operation(s)')
        return drafts

    def analyze(self, drafts: list[OperationDraft]) -> None:
        roots = [(path, _pointer(path)) for path in self.document.component_schema_paths()]
        for draft in drafts:
            roots.extend(draft.references())
        self.report.extend(self.resolver.analyze(roots))
        for cycle in self.resolver.cycles():
            logger.debug(f'Reference cycle: {", ".join(cycle)}')

    def bind(self, drafts: list[OperationDraft], mapper: TypeMapper) -> list[Operation]:
        operations = []
        for draft in drafts:
            try:
                operations.append(self.builder.bind(draft, mapper))
            except NameCollision as e:
                self.report.add(Diagnostic.from_exception(DiagnosticKind.NAME_COLLISION, e, draft.pointer))
            self.report.extend(mapper.take_diagnostics())

        if self.config.emit_all_components:
            for path in self.document.component_schema_paths():
                try:
                    mapper.map_component(path)
                except NameCollision as e:
                    self.report.add(Diagnostic.from_exception(DiagnosticKind.NAME_COLLISION, e, _pointer(path)))
                self.report.extend(mapper.take_diagnostics())

        mapper.drain()
        self.report.extend(mapper.take_diagnostics())
        return operations

    def generate(self, mapper: TypeMapper, operations: list[Operation]) -> list[GeneratedModule]:
        generator = CodeGenerator(
            self.document,
            self.config,
            mapper.declarations,
            operations,
            base_url=self.base_url,
            executor=self.executor,
        )
        try:
            return generator.generate()
        except NameCollision as e:
            self.report.add(Diagnostic.from_exception(DiagnosticKind.NAME_COLLISION, e))
            return []


def generate_modules(
    document: Document, config: GeneratorConfig | None = None, *, base_url: str | None = None
) -> GenerationResult:
    """Generate the models and client modules for a document.

    Args:
        document: The document to generate code for.
        config: Generator configuration. A ``DocumentConfig`` also supplies
            the base URL.
        base_url: Base URL replacing the servers declared in the document.

    Raises:
        ConfigurationError: If the configured overrides are invalid.
    """
    config = config or GeneratorConfig()
    if base_url is None and isinstance(config, DocumentConfig):
        base_url = config.base_url

    with ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix='reefgen') as executor:
        return GenerationRun(document, config, executor, base_url).run()


class Codegen:
    """Generates a typed client package for one configured document.

    Example:
        >>> from reefgen.config import DocumentConfig
        >>> from reefgen.codegen.codegen import Codegen
        >>>
        >>> config = DocumentConfig(
        ...     source="https://api.example.com/openapi.json",
        ...     output="./client"
        ... )
        >>> Codegen(config).generate()
        # Creates models.py, client.py, __init__.py and py.typed in ./client/
    """

    def __init__(
        self,
        config: DocumentConfig,
        schema_loader: SchemaLoader | None = None,
        emitter: CodeEmitter | None = None,
    ):
        """Initialize the code generator.

        Args:
            config: Configuration specifying source document and output location.
            schema_loader: Optional custom schema loader.
            emitter: Optional emitter; defaults to writing files to ``config.output``.
        """
        self.config = config
        self._schema_loader = schema_loader or SchemaLoader()
        self._emitter = emitter

    def load(self) -> Document:
        """Load the configured document.

        Raises:
            SchemaLoadError: If the document cannot be loaded.
            SchemaValidationError: If the document is not OpenAPI 3.
        """
        return self._schema_loader.load(self.config.source)

    def run(self) -> GenerationResult:
        """Load the document and run the pipeline without writing anything."""
        result = generate_modules(self.load(), self.config)
        for diagnostic in result.report:
            if diagnostic.is_error:
                logger.error(str(diagnostic))
            else:
                logger.warning(str(diagnostic))
        return result

    def generate(self) -> list[str]:
        """Generate and write the client package.

        Returns:
            The paths (or sources) written by the emitter.

        Raises:
            GenerationFailed: If the run produced any error; nothing is written.
        """
        result = self.run()
        if result.failed:
            raise GenerationFailed(result.report)

        emitter = self._emitter or FileEmitter(self.config.output)
        written = emitter.emit_package(result.modules)
        logger.info(f'Generated {len(written)} file(s) for {self.config.source}')
        return written
