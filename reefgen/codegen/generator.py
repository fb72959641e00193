"""Code generation from mapped declarations and operations.

This module provides the CodeGenerator class, which turns the declarations
recorded by the type mapper and the bound operations into two
``GeneratedModule`` values: a models module (pydantic models, enums and
root models) and a client module (one client class plus server
factories). Rendering to text is left to an emitter.
"""

import ast
import logging
from collections.abc import Iterator
from concurrent.futures import Executor
from typing import Any, assert_never

from reefgen.codegen.ast_utils import (
    _argument,
    _assign,
    _attr,
    _call,
    _class,
    _const,
    _docstring,
    _func,
    _has_forward_ref,
    _keyword,
    _name,
    _optional_expr,
    _subscript,
    _typing_union,
    _union_expr,
)
from reefgen.codegen.document import Document
from reefgen.codegen.endpoints import (
    RUNTIME_MODULE,
    clean_docstring,
    client_init,
    request_method,
    server_factory,
    server_factory_names,
)
from reefgen.codegen.ir import (
    ClientClass,
    Container,
    Declaration,
    DeclarationKind,
    Existing,
    Generated,
    GeneratedModule,
    Indirect,
    Nullable,
    Operation,
    OperationBinding,
    PrimitiveKind,
    TypeDeclaration,
    TypeDescriptor,
    iter_generated,
)
from reefgen.codegen.utils import RESERVED_CLASS_NAMES, sanitize_identifier, to_snake_case
from reefgen.config import GeneratorConfig
from reefgen.exceptions import NameCollision

logger = logging.getLogger(__name__)

# Simple names the generated modules import themselves
_IMPORTED_NAMES = {
    'Any': 'typing.Any',
    'Optional': 'typing.Optional',
    'Union': 'typing.Union',
    'Enum': 'enum.Enum',
    'BaseModel': 'pydantic.BaseModel',
    'ConfigDict': 'pydantic.ConfigDict',
    'Field': 'pydantic.Field',
    'RootModel': 'pydantic.RootModel',
    'field_validator': 'pydantic.field_validator',
    'ApiClient': f'{RUNTIME_MODULE}.ApiClient',
    'BodyEncoding': f'{RUNTIME_MODULE}.BodyEncoding',
    'SerializationStrategy': f'{RUNTIME_MODULE}.SerializationStrategy',
    'UnrecognizedStatus': f'{RUNTIME_MODULE}.UnrecognizedStatus',
    'decode_first_match': f'{RUNTIME_MODULE}.decode_first_match',
    'decode_json': f'{RUNTIME_MODULE}.decode_json',
    'decode_tagged': f'{RUNTIME_MODULE}.decode_tagged',
    'encode_body': f'{RUNTIME_MODULE}.encode_body',
    'serialize_cookie': f'{RUNTIME_MODULE}.serialize_cookie',
    'serialize_header': f'{RUNTIME_MODULE}.serialize_header',
    'serialize_path': f'{RUNTIME_MODULE}.serialize_path',
    'serialize_query': f'{RUNTIME_MODULE}.serialize_query',
}


def _iter_existing(descriptor: TypeDescriptor) -> Iterator[Existing]:
    match descriptor:
        case Existing():
            yield descriptor
        case Generated() | Indirect():
            return
        case Container(args=args):
            for arg in args:
                yield from _iter_existing(arg)
        case Nullable(inner=inner):
            yield from _iter_existing(inner)
        case _:
            assert_never(descriptor)


def _operation_descriptors(operation: Operation) -> Iterator[TypeDescriptor]:
    for parameter in operation.parameters:
        yield parameter.descriptor
    if operation.body is not None:
        yield operation.body.descriptor
    for response in operation.responses:
        if response.descriptor is not None:
            yield response.descriptor


def _literal(value: Any) -> ast.expr:
    if isinstance(value, dict):
        return ast.Dict(keys=[_literal(k) for k in value], values=[_literal(v) for v in value.values()])
    if isinstance(value, list | tuple):
        return ast.List(elts=[_literal(item) for item in value], ctx=ast.Load())
    return _const(value)


def _is_optional(annotation: ast.expr) -> bool:
    if isinstance(annotation, ast.Name) and annotation.id == 'Any':
        return True
    if isinstance(annotation, ast.Constant) and annotation.value is None:
        return True
    if isinstance(annotation, ast.Subscript) and isinstance(annotation.value, ast.Name):
        return annotation.value.id == 'Optional'
    return (
        isinstance(annotation, ast.BinOp)
        and isinstance(annotation.right, ast.Constant)
        and annotation.right.value is None
    )


def _merge(target: dict[str, set[str]], imports: dict[str, set[str]]) -> None:
    for module, names in imports.items():
        target.setdefault(module, set()).update(names)


def enum_member_names(values: tuple[str | int, ...]) -> list[str]:
    """Upper snake case member names for enum values, made unique in order."""
    names = []
    taken: set[str] = set()
    for value in values:
        if isinstance(value, int):
            name = f'VALUE_{value}' if value >= 0 else f'VALUE_MINUS_{-value}'
        else:
            name = to_snake_case(str(value)).upper().rstrip('_')
            if not name or not name[0].isalpha():
                name = f'VALUE_{name.lstrip("_")}'.rstrip('_')
        candidate, suffix = name, 2
        while candidate in taken:
            candidate = f'{name}_{suffix}'
            suffix += 1
        taken.add(candidate)
        names.append(candidate)
    return names


class CodeGenerator:
    """Builds the AST of the models module and the client module.

    Declarations are emitted depth-first from the operations, dependencies
    first. A reference to a type that is declared later (or that closes a
    cycle) becomes a string forward reference, and the affected models are
    rebuilt at the end of the module.

    Example:
        >>> generator = CodeGenerator(document, config, mapper.declarations, operations)
        >>> models, client = generator.generate()
        >>> [d.name for d in models.declarations]
        ['Pet', 'Error']
    """

    def __init__(
        self,
        document: Document,
        config: GeneratorConfig,
        declarations: dict[str, Declaration],
        operations: list[Operation],
        *,
        base_url: str | None = None,
        executor: Executor | None = None,
    ):
        self.document = document
        self.config = config
        self.declarations = declarations
        self.operations = operations
        self.base_url = base_url
        self.executor = executor
        self._position: dict[str, int] = {}

    @property
    def client_class_name(self) -> str:
        if self.config.client_class_name:
            return self.config.client_class_name
        return f'{sanitize_identifier(self.document.title)}Client'

    def generate(self) -> list[GeneratedModule]:
        """Generate the models module and the client module.

        Raises:
            NameCollision: If an existing type, a generated type or the client
                class would be imported under the same simple name.
        """
        self.check_names()
        ordered = self.order_declarations()
        self._position = {declaration.name: index for index, declaration in enumerate(ordered)}
        models = self._models_module(ordered)
        client = self._client_module()
        logger.info(
            f'Generated {len(models.declarations)} declaration(s) and {len(client.operations)} operation(s)'
        )
        return [models, client]

    # -------------------------------------------------------------------------
    # Ordering and naming
    # -------------------------------------------------------------------------

    def _dependencies(self, name: str) -> list[str]:
        return [
            generated.name
            for descriptor in self.declarations[name].references()
            for generated in iter_generated(descriptor)
        ]

    def order_declarations(self) -> list[Declaration]:
        roots = [
            generated.name
            for operation in self.operations
            for descriptor in _operation_descriptors(operation)
            for generated in iter_generated(descriptor)
        ]
        # Declarations no operation reaches (emit_all_components) follow in mapping order
        roots.extend(self.declarations)

        ordered: list[Declaration] = []
        seen: set[str] = set()
        for root in roots:
            if root in seen or root not in self.declarations:
                continue
            seen.add(root)
            stack = [(root, iter(self._dependencies(root)))]
            while stack:
                name, dependencies = stack[-1]
                for dependency in dependencies:
                    if dependency not in seen and dependency in self.declarations:
                        seen.add(dependency)
                        stack.append((dependency, iter(self._dependencies(dependency))))
                        break
                else:
                    stack.pop()
                    ordered.append(self.declarations[name])
        return ordered

    def check_names(self) -> None:
        generated = set(self.declarations)
        known = dict(_IMPORTED_NAMES)

        descriptors = [d for declaration in self.declarations.values() for d in declaration.references()]
        descriptors.extend(d for operation in self.operations for d in _operation_descriptors(operation))

        for descriptor in descriptors:
            for existing in _iter_existing(descriptor):
                if existing.module == 'builtins':
                    continue
                if existing.name in generated:
                    raise NameCollision(existing.name, existing.qualified_name, f'generated type {existing.name}')
                claimed = known.setdefault(existing.name, existing.qualified_name)
                if claimed != existing.qualified_name:
                    raise NameCollision(existing.name, claimed, existing.qualified_name)

        class_name = self.client_class_name
        if class_name in generated or class_name in known:
            raise NameCollision(class_name, 'the client class', known.get(class_name, f'generated type {class_name}'))

    # -------------------------------------------------------------------------
    # Annotations
    # -------------------------------------------------------------------------

    def annotation(
        self,
        descriptor: TypeDescriptor,
        imports: dict[str, set[str]],
        position: int | None = None,
        local: bool = True,
    ) -> ast.expr:
        """Render a type descriptor as an annotation expression.

        Args:
            descriptor: The descriptor to render.
            imports: Receives the imports the expression needs.
            position: Index of the declaration being rendered. References to
                declarations at or after it are quoted. ``None`` renders every
                reference unquoted.
            local: Whether generated types live in the module being rendered.
        """
        match descriptor:
            case Generated(name=name, module=module):
                if position is not None and self._position.get(name, -1) >= position:
                    return _const(name)
                if not local:
                    imports.setdefault(f'.{module}', set()).add(name)
                return _name(name)
            case Indirect(target=target):
                if position is not None:
                    return _const(target.name)
                return self.annotation(target, imports, None, local)
            case Existing():
                if descriptor.qualified_name == 'builtins.None':
                    return _const(None)
                if descriptor.module != 'builtins':
                    imports.setdefault(descriptor.module, set()).add(descriptor.name)
                return _name(descriptor.name)
            case Container(origin=origin, args=args):
                rendered = [self.annotation(arg, imports, position, local) for arg in args]
                inner = rendered[0] if len(rendered) == 1 else ast.Tuple(elts=rendered, ctx=ast.Load())
                return _subscript(origin, inner)
            case Nullable(inner=inner):
                return self._nullable(self.annotation(inner, imports, position, local), imports)
            case _:
                assert_never(descriptor)

    def _nullable(self, annotation: ast.expr, imports: dict[str, set[str]]) -> ast.expr:
        if _is_optional(annotation):
            return annotation
        if _has_forward_ref(annotation):
            imports.setdefault('typing', set()).add('Optional')
            return _optional_expr(annotation)
        return _union_expr([annotation, _const(None)])

    def _union(self, alternatives: list[ast.expr], imports: dict[str, set[str]]) -> ast.expr:
        if any(_has_forward_ref(expr) for expr in alternatives):
            imports.setdefault('typing', set()).add('Union')
            return _typing_union(alternatives)
        return _union_expr(alternatives)

    # -------------------------------------------------------------------------
    # Models module
    # -------------------------------------------------------------------------

    def _models_module(self, ordered: list[Declaration]) -> GeneratedModule:
        if self.executor is not None:
            declarations = list(self.executor.map(self._declaration, ordered))
        else:
            declarations = [self._declaration(declaration) for declaration in ordered]

        rebuild = self._rebuild_set(ordered, declarations)
        trailer: list[ast.stmt] = []
        for declaration in declarations:
            declaration.rebuild = declaration.name in rebuild
            if declaration.rebuild:
                trailer.append(ast.Expr(value=_call(_attr(declaration.name, 'model_rebuild'))))

        return GeneratedModule(
            name=self.config.module_name,
            docstring=f'Models for {self.document.title}. Generated by reefgen; do not edit.',
            declarations=declarations,
            trailer=trailer,
            exports=[declaration.name for declaration in declarations],
        )

    def _rebuild_set(self, ordered: list[Declaration], built: list[TypeDeclaration]) -> set[str]:
        forward = {item.name for item in built if item.rebuild}
        rebuild = set(forward)
        changed = True
        while changed:
            changed = False
            for declaration in ordered:
                if declaration.name in rebuild or declaration.kind is DeclarationKind.ENUM:
                    continue
                if any(dependency in rebuild for dependency in self._dependencies(declaration.name)):
                    rebuild.add(declaration.name)
                    changed = True
        return rebuild

    def _declaration(self, declaration: Declaration) -> TypeDeclaration:
        position = self._position[declaration.name]
        imports: dict[str, set[str]] = {}
        match declaration.kind:
            case DeclarationKind.MODEL:
                node, forward = self._model(declaration, position, imports)
            case DeclarationKind.ENUM:
                node, forward = self._enum(declaration, imports)
            case DeclarationKind.UNION:
                node, forward = self._union_model(declaration, position, imports)
            case DeclarationKind.ALIAS:
                node, forward = self._alias(declaration, position, imports)
            case _:
                assert_never(declaration.kind)
        # ``rebuild`` holds "has forward references" until the module is assembled
        return TypeDeclaration(declaration.name, node, imports, rebuild=forward)

    def _class_body(self, declaration: Declaration) -> list[ast.stmt]:
        if declaration.description and declaration.description.strip():
            return [_docstring(clean_docstring(declaration.description))]
        return []

    def _model(
        self, declaration: Declaration, position: int, imports: dict[str, set[str]]
    ) -> tuple[ast.ClassDef, bool]:
        imports.setdefault('pydantic', set()).update({'BaseModel', 'ConfigDict'})
        body = self._class_body(declaration)
        body.append(
            _assign(
                _name('model_config'),
                _call(
                    _name('ConfigDict'),
                    keywords=[
                        _keyword('extra', _const(declaration.extra)),
                        _keyword('populate_by_name', _const(True)),
                    ],
                ),
            )
        )

        rendered = [
            (item, self.annotation(item.descriptor, imports, position)) for item in declaration.fields
        ]
        # A field may not shadow a name its class body still needs
        shadowed = set(RESERVED_CLASS_NAMES) | {
            node.id for _, expr in rendered for node in ast.walk(expr) if isinstance(node, ast.Name)
        }
        used: set[str] = set()
        forward = False

        for item, annotation in rendered:
            python_name = item.python_name
            while python_name in shadowed or python_name in used:
                python_name = f'{python_name}_'
            used.add(python_name)

            default: ast.expr | None = None
            if not item.required:
                annotation = self._nullable(annotation, imports)
                default = _literal(item.default) if item.has_default else _const(None)
            forward = forward or _has_forward_ref(annotation)

            keywords = []
            if python_name != item.name:
                keywords.append(_keyword('alias', _const(item.name)))
            if item.description and item.description.strip():
                keywords.append(_keyword('description', _const(item.description.strip())))

            value: ast.expr | None = default
            if keywords:
                imports['pydantic'].add('Field')
                value = _call(_name('Field'), [default] if default is not None else [], keywords)

            body.append(
                ast.AnnAssign(
                    target=ast.Name(id=python_name, ctx=ast.Store()),
                    annotation=annotation,
                    value=value,
                    simple=1,
                )
            )

        return _class(declaration.name, [_name('BaseModel')], body), forward

    def _enum(self, declaration: Declaration, imports: dict[str, set[str]]) -> tuple[ast.ClassDef, bool]:
        imports.setdefault('enum', set()).add('Enum')
        base = 'int' if declaration.value_kind is PrimitiveKind.INTEGER else 'str'
        body = self._class_body(declaration)
        for name, value in zip(enum_member_names(declaration.values), declaration.values):
            body.append(_assign(_name(name), _const(value)))
        return _class(declaration.name, [_name(base), _name('Enum')], body), False

    def _root_model(
        self, declaration: Declaration, root: ast.expr, imports: dict[str, set[str]]
    ) -> list[ast.stmt]:
        imports.setdefault('pydantic', set()).add('RootModel')
        body = self._class_body(declaration)
        body.append(ast.AnnAssign(target=ast.Name(id='root', ctx=ast.Store()), annotation=root, value=None, simple=1))
        return body

    def _union_model(
        self, declaration: Declaration, position: int, imports: dict[str, set[str]]
    ) -> tuple[ast.ClassDef, bool]:
        alternatives = [self.annotation(d, imports, position) for d in declaration.alternatives]
        root = self._union(alternatives, imports)
        body = self._root_model(declaration, root, imports)

        # Validators run after the module is loaded, so nothing needs quoting here
        runtime = [self.annotation(d, imports, None) for d in declaration.alternatives]
        if declaration.discriminator and declaration.tags:
            imports.setdefault(RUNTIME_MODULE, set()).add('decode_tagged')
            mapping = ast.Dict(
                keys=[_const(tag) for tag, _ in declaration.tags],
                values=[self.annotation(d, imports, None) for _, d in declaration.tags],
            )
            decode = _call(_name('decode_tagged'), [_const(declaration.discriminator), mapping, _name('value')])
        else:
            imports.setdefault(RUNTIME_MODULE, set()).add('decode_first_match')
            decode = _call(
                _name('decode_first_match'),
                [ast.Tuple(elts=runtime, ctx=ast.Load()), _name('value')],
            )

        imports['pydantic'].add('field_validator')
        imports.setdefault('typing', set()).add('Any')
        validator = _func(
            name='decode_root',
            args=[_argument('cls'), _argument('value', _name('Any'))],
            body=[ast.Return(value=decode)],
            returns=_name('Any'),
            decorators=[
                _call(_name('field_validator'), [_const('root')], [_keyword('mode', _const('before'))]),
                _name('classmethod'),
            ],
        )
        body.append(validator)
        return _class(declaration.name, [_name('RootModel')], body), _has_forward_ref(root)

    def _alias(
        self, declaration: Declaration, position: int, imports: dict[str, set[str]]
    ) -> tuple[ast.ClassDef, bool]:
        root = self.annotation(declaration.root, imports, position)
        body = self._root_model(declaration, root, imports)
        return _class(declaration.name, [_name('RootModel')], body), _has_forward_ref(root)

    # -------------------------------------------------------------------------
    # Client module
    # -------------------------------------------------------------------------

    def _servers(self) -> list[dict]:
        if self.base_url:
            return [{'url': self.base_url, 'description': 'default'}]
        servers = self.document.root.scalar('servers') or []
        return [server for server in servers if isinstance(server, dict) and server.get('url')]

    def _client_module(self) -> GeneratedModule:
        imports: dict[str, set[str]] = {RUNTIME_MODULE: {'ApiClient'}}

        def annotate(descriptor: TypeDescriptor) -> ast.expr:
            return self.annotation(descriptor, imports, None, local=False)

        bindings = []
        for operation in self.operations:
            node, used = request_method(operation, annotate)
            _merge(imports, used)
            bindings.append(OperationBinding(operation.method_name, node, operation))

        class_name = self.client_class_name
        title = self.document.title
        version = self.document.version
        docstring = f'Client for the {title} API' + (f' (version {version}).' if version else '.')

        servers = self._servers()
        reserved = set(_IMPORTED_NAMES) | set(imports.get(f'.{self.config.module_name}', set()))
        names = server_factory_names(servers, reserved)
        trailer: list[ast.stmt] = []
        for name, server in zip(names, servers):
            node, used = server_factory(name, server, class_name)
            _merge(imports, used)
            trailer.append(node)

        return GeneratedModule(
            name=self.config.client_module,
            docstring=f'HTTP client for {title}. Generated by reefgen; do not edit.',
            imports=imports,
            client=ClientClass(class_name, docstring, client_init()),
            operations=bindings,
            trailer=trailer,
            exports=[class_name, *names],
        )
