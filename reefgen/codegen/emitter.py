"""Code emitter interfaces and implementations for code generation output.

This module provides the CodeEmitter interface and concrete implementations
for emitting generated modules in different forms (files on disk, strings).
Rendering goes through ``ast.unparse`` only, so the same modules always
produce the same text.
"""

import ast
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

from upath import UPath

from reefgen.codegen.ast_utils import ImportCollector, _all, _class, _docstring
from reefgen.codegen.ir import GeneratedModule
from reefgen.exceptions import OutputError

logger = logging.getLogger(__name__)

Formatter = Callable[[str], str]


class CodeEmitter(ABC):
    """Abstract base class for code emitters.

    A CodeEmitter takes generated modules and outputs them in a specific form.

    Args:
        validate_syntax: Whether to compile every rendered module before
            emitting it.
        formatter: Optional callable applied to the rendered source, e.g. a
            wrapper around an external formatter.
    """

    def __init__(self, validate_syntax: bool = True, formatter: Formatter | None = None):
        self.validate_syntax = validate_syntax
        self.formatter = formatter

    def render(self, module: GeneratedModule) -> str:
        """Render one generated module to Python source.

        Raises:
            SyntaxError: If the rendered source does not compile.
        """
        body: list[ast.stmt] = []
        if module.docstring:
            body.append(_docstring(module.docstring))

        collector = ImportCollector()
        collector.add_imports(module.imports)
        for declaration in module.declarations:
            collector.add_imports(declaration.imports)
        body.extend(collector.to_ast())

        if module.exports:
            body.append(_all(module.exports))

        body.extend(declaration.node for declaration in module.declarations)

        if module.client is not None:
            class_body: list[ast.stmt] = []
            if module.client.docstring:
                class_body.append(_docstring(module.client.docstring))
            class_body.append(module.client.init)
            class_body.extend(binding.node for binding in module.operations)
            body.append(_class(module.client.name, [], class_body))

        body.extend(module.trailer)

        tree = ast.Module(body=body, type_ignores=[])
        ast.fix_missing_locations(tree)
        source = ast.unparse(tree) + '\n'

        if self.validate_syntax:
            self._validate_syntax(source, module.name)

        if self.formatter is not None:
            source = self.formatter(source)
        return source

    def _validate_syntax(self, source: str, name: str) -> None:
        try:
            compile(source, f'{name}.py', 'exec')
        except SyntaxError as e:
            raise SyntaxError(f'Generated code for {name} has invalid syntax: {e}')

    @abstractmethod
    def emit_module(self, module: GeneratedModule) -> str:
        """Emit a complete Python module.

        Returns:
            The path to the emitted file, or the code string, depending on
            the implementation.
        """
        pass

    def emit_package(self, modules: list[GeneratedModule]) -> list[str]:
        """Emit every module of one generated package."""
        return [self.emit_module(module) for module in modules]


class FileEmitter(CodeEmitter):
    """Emits generated modules as a Python package on disk.

    Besides one file per module, the package gets an ``__init__.py``
    re-exporting the client module and a ``py.typed`` marker.
    """

    def __init__(
        self,
        output_dir: str | Path | UPath,
        validate_syntax: bool = True,
        formatter: Formatter | None = None,
        create_init: bool = True,
    ):
        """Initialize the file emitter.

        Args:
            output_dir: Directory where files will be written.
            validate_syntax: Whether to validate Python syntax before writing.
            formatter: Optional source formatter.
            create_init: Whether to create ``__init__.py`` and ``py.typed``.
        """
        super().__init__(validate_syntax, formatter)
        self.output_dir = UPath(output_dir)
        self.create_init = create_init
        self._written_files: list[str] = []

    def emit_module(self, module: GeneratedModule) -> str:
        return self._write_file(f'{module.name}.py', self.render(module))

    def emit_package(self, modules: list[GeneratedModule]) -> list[str]:
        # Render everything first so that a failure leaves the directory untouched
        rendered = [(f'{module.name}.py', self.render(module)) for module in modules]
        written = [self._write_file(filename, source) for filename, source in rendered]
        if self.create_init:
            written.append(self.emit_init(modules))
            written.append(self.emit_py_typed())
        return written

    def emit_init(self, modules: list[GeneratedModule]) -> str:
        """Emit an ``__init__.py`` re-exporting the client module's names."""
        body: list[ast.stmt] = []
        exports: list[str] = []
        for module in modules:
            if module.client is None or not module.exports:
                continue
            body.append(
                ast.ImportFrom(
                    module=module.name,
                    names=[ast.alias(name=name, asname=None) for name in module.exports],
                    level=1,
                )
            )
            exports.extend(module.exports)

        if not body:
            return self._write_file('__init__.py', '')

        body.append(_all(exports))
        tree = ast.Module(body=body, type_ignores=[])
        ast.fix_missing_locations(tree)
        return self._write_file('__init__.py', ast.unparse(tree) + '\n')

    def emit_py_typed(self) -> str:
        """Emit a py.typed marker file for PEP 561."""
        return self._write_file('py.typed', '')

    def _write_file(self, filename: str, content: str) -> str:
        file_path = self.output_dir / filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding='utf-8')
        except OSError as e:
            raise OutputError(str(file_path), e)
        self._written_files.append(str(file_path))
        logger.debug(f'Wrote {file_path}')
        return str(file_path)

    def get_written_files(self) -> list[str]:
        """Get list of all files written by this emitter."""
        return self._written_files.copy()


class StringEmitter(CodeEmitter):
    """Emits generated modules as strings.

    This emitter is useful for testing or when the generated code is
    processed further before being written.
    """

    def __init__(self, validate_syntax: bool = True, formatter: Formatter | None = None):
        super().__init__(validate_syntax, formatter)
        self._modules: dict[str, str] = {}

    def emit_module(self, module: GeneratedModule) -> str:
        source = self.render(module)
        self._modules[module.name] = source
        return source

    def get_module(self, name: str) -> str | None:
        """Get a previously emitted module by name."""
        return self._modules.get(name)

    def get_all_modules(self) -> dict[str, str]:
        """Get all emitted modules, keyed by module name."""
        return self._modules.copy()
