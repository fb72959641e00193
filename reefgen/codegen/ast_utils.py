"""Small builders for the AST nodes that generated modules are made of.

Generated code is assembled as ``ast`` trees and rendered with
``ast.unparse``. ``ImportCollector`` gathers the import block for a module.
"""

import ast
import sys
from collections.abc import Iterable

__all__ = [
    # AST helpers
    '_name',
    '_attr',
    '_const',
    '_keyword',
    '_subscript',
    '_union_expr',
    '_optional_expr',
    '_typing_union',
    '_has_forward_ref',
    '_argument',
    '_assign',
    '_call',
    '_func',
    '_class',
    '_docstring',
    '_all',
    # Import collection
    'ImportCollector',
]


def _name(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def _attr(value: str | ast.expr, attr: str) -> ast.Attribute:
    return ast.Attribute(
        value=_name(value) if isinstance(value, str) else value,
        attr=attr,
        ctx=ast.Load(),
    )


def _const(value) -> ast.Constant:
    return ast.Constant(value=value)


def _keyword(arg: str | None, value: ast.expr) -> ast.keyword:
    return ast.keyword(arg=arg, value=value)


def _subscript(generic: str | ast.expr, inner: ast.expr) -> ast.Subscript:
    return ast.Subscript(
        value=_name(generic) if isinstance(generic, str) else generic,
        slice=inner,
        ctx=ast.Load(),
    )


def _union_expr(types: list[ast.expr]) -> ast.expr:
    # A | B | C (using pipe operator instead of Union[A, B, C])
    if not types:
        raise ValueError('_union_expr requires at least one type')
    if len(types) == 1:
        return types[0]
    result = types[0]
    for t in types[1:]:
        result = ast.BinOp(left=result, op=ast.BitOr(), right=t)
    return result


def _optional_expr(inner: ast.expr) -> ast.Subscript:
    return _subscript('Optional', inner)


def _typing_union(types: list[ast.expr]) -> ast.expr:
    # Union['A', B]: the pipe operator is not defined for string forward references
    if len(types) == 1:
        return types[0]
    return _subscript('Union', ast.Tuple(elts=types, ctx=ast.Load()))


def _has_forward_ref(expr: ast.expr) -> bool:
    return any(
        isinstance(node, ast.Constant) and isinstance(node.value, str)
        for node in ast.walk(expr)
    )


def _argument(name: str, value: ast.expr | None = None) -> ast.arg:
    return ast.arg(
        arg=name,
        annotation=value,
    )


def _assign(target: ast.expr, value: ast.expr) -> ast.Assign:
    # Ensure target has Store context
    if isinstance(target, ast.Name):
        target = ast.Name(id=target.id, ctx=ast.Store())
    elif isinstance(target, ast.Attribute | ast.Subscript):
        # For attributes and subscripts, only the outermost needs Store context
        target.ctx = ast.Store()
    return ast.Assign(
        targets=[target],
        value=value,
    )


def _call(
    func: ast.expr,
    args: list[ast.expr] | None = None,
    keywords: list[ast.keyword] | None = None,
) -> ast.Call:
    return ast.Call(
        func=func,
        args=args or [],
        keywords=keywords or [],
    )


def _func(
    name: str,
    args: list[ast.arg],
    body: list[ast.stmt],
    returns: ast.expr | None = None,
    kwargs: ast.arg = None,
    kwonlyargs: list[ast.arg] = None,
    kw_defaults: list[ast.expr] = None,
    decorators: list[ast.expr] = None,
) -> ast.FunctionDef:
    return ast.FunctionDef(
        name=name,
        args=ast.arguments(
            posonlyargs=[],
            args=args,
            kwarg=kwargs,
            kwonlyargs=kwonlyargs or [],
            kw_defaults=kw_defaults or [],
            defaults=[],
        ),
        body=body,
        decorator_list=decorators or [],
        returns=returns,
        type_params=[],
    )


def _class(
    name: str,
    bases: list[ast.expr],
    body: list[ast.stmt],
) -> ast.ClassDef:
    return ast.ClassDef(
        name=name,
        bases=bases,
        keywords=[],
        body=body or [ast.Pass()],
        decorator_list=[],
        type_params=[],
    )


def _docstring(text: str) -> ast.Expr:
    return ast.Expr(value=_const(text))


def _all(names: Iterable[str]) -> ast.Assign:
    return _assign(
        target=_name('__all__'),
        value=ast.List(elts=[_const(name) for name in names], ctx=ast.Load()),
    )


# =============================================================================
# Import Collection
# =============================================================================


class ImportCollector:
    """Accumulates ``from module import name`` pairs for one generated module.

    Names are merged per module and rendered in a stable order, so two runs
    over the same document produce the same import block. Anything from
    ``builtins`` is dropped.

    Example:
        >>> collector = ImportCollector()
        >>> collector.add_qualified('datetime.datetime')
        >>> collector.add_imports({'.models': {'Pet'}})
        >>> [ast.unparse(node) for node in collector.to_ast()]
        ['from datetime import datetime', 'from .models import Pet']
    """

    def __init__(self):
        self._imports: dict[str, set[str]] = {}

    def add_imports(self, imports: dict[str, set[str]]) -> None:
        """Merge a ``{module: {names}}`` mapping into the collector."""
        for module, names in imports.items():
            for name in names:
                self.add_import(module, name)

    def add_import(self, module: str, name: str) -> None:
        if module == 'builtins':
            return
        self._imports.setdefault(module, set()).add(name)

    def add_qualified(self, qualified_name: str) -> None:
        """Add an import for a dotted name such as ``datetime.datetime``."""
        module, _, name = qualified_name.rpartition('.')
        self.add_import(module or 'builtins', name)

    @staticmethod
    def _group(module: str) -> int:
        # stdlib, then third-party, then relative
        if module.startswith('.'):
            return 2
        return 0 if module.partition('.')[0] in sys.stdlib_module_names else 1

    def to_ast(self) -> list[ast.ImportFrom]:
        """Render one ``ImportFrom`` per module, grouped and sorted by module name."""
        statements = []
        for module in sorted(self._imports, key=lambda m: (self._group(m), m)):
            relative = module.lstrip('.')
            statements.append(
                ast.ImportFrom(
                    module=relative or None,
                    names=[ast.alias(name=name, asname=None) for name in sorted(self._imports[module])],
                    level=len(module) - len(relative),
                )
            )
        return statements

    def has_imports(self) -> bool:
        return bool(self._imports)

    def names(self) -> dict[str, str]:
        """Map every imported simple name to the module it comes from."""
        return {
            name: module
            for module, names in self._imports.items()
            for name in names
        }
