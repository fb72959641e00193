import ast
import re
import textwrap
from collections.abc import Callable

from reefgen.codegen.ast_utils import (
    _argument,
    _assign,
    _attr,
    _call,
    _const,
    _docstring,
    _func,
    _keyword,
    _name,
    _subscript,
    _union_expr,
)
from reefgen.codegen.ir import (
    ContentKind,
    Operation,
    Parameter,
    ParameterLocation,
    ResponseVariant,
    TypeDescriptor,
)
from reefgen.codegen.utils import to_snake_case
from reefgen.runtime import BodyEncoding

Annotate = Callable[[TypeDescriptor], ast.expr]

RUNTIME_MODULE = 'reefgen.runtime'

_TEMPLATE = re.compile(r'\{([^{}]+)\}')

_SERIALIZERS = {
    ParameterLocation.PATH: 'serialize_path',
    ParameterLocation.QUERY: 'serialize_query',
    ParameterLocation.HEADER: 'serialize_header',
    ParameterLocation.COOKIE: 'serialize_cookie',
}


def clean_docstring(docstring: str) -> str:
    return textwrap.dedent(f'\n{docstring}\n').strip()


def template_expr(template: str, substitutions: dict[str, ast.expr]) -> ast.expr:
    """Build ``'a' + x + 'b'`` from ``'a{x}b'``; unknown placeholders stay literal."""
    parts: list[ast.expr] = []
    literal = ''
    position = 0
    for match in _TEMPLATE.finditer(template):
        literal += template[position:match.start()]
        position = match.end()
        value = substitutions.get(match.group(1))
        if value is None:
            literal += match.group(0)
            continue
        if literal:
            parts.append(_const(literal))
            literal = ''
        parts.append(value)
    literal += template[position:]
    if literal:
        parts.append(_const(literal))

    if not parts:
        return _const('')
    result = parts[0]
    for part in parts[1:]:
        result = ast.BinOp(left=result, op=ast.Add(), right=part)
    return result


def _strategy(parameter: Parameter) -> ast.expr:
    return _attr('SerializationStrategy', parameter.strategy.name)


def _serialize(parameter: Parameter) -> ast.Call:
    args: list[ast.expr] = [_strategy(parameter)]
    if parameter.location in (ParameterLocation.PATH, ParameterLocation.QUERY):
        args.append(_const(parameter.name))
    args.append(_name(parameter.python_name))
    return _call(_name(_SERIALIZERS[parameter.location]), args)


def _is_not_none(name: str) -> ast.Compare:
    return ast.Compare(left=_name(name), ops=[ast.IsNot()], comparators=[_const(None)])


def _guarded(parameter: Parameter, statement: ast.stmt) -> ast.stmt:
    if parameter.required:
        return statement
    return ast.If(test=_is_not_none(parameter.python_name), body=[statement], orelse=[])


def get_arguments(
    operation: Operation, annotate: Annotate
) -> tuple[list[ast.arg], list[ast.arg], list[ast.expr]]:
    """Required parameters (and a required body) are positional, the rest keyword-only."""
    args = [_argument('self')]
    kwonlyargs = []
    kw_defaults = []

    for parameter in operation.parameters:
        annotation = annotate(parameter.descriptor)
        if parameter.required:
            args.append(_argument(parameter.python_name, annotation))
        else:
            kwonlyargs.append(_argument(parameter.python_name, _optional(annotation)))
            kw_defaults.append(_const(None))

    body = operation.body
    if body is not None:
        annotation = annotate(body.descriptor)
        if body.required:
            args.append(_argument('body', annotation))
        else:
            kwonlyargs.append(_argument('body', _optional(annotation)))
            kw_defaults.append(_const(None))

    return args, kwonlyargs, kw_defaults


def _optional(annotation: ast.expr) -> ast.expr:
    if isinstance(annotation, ast.Name) and annotation.id == 'Any':
        return annotation
    if isinstance(annotation, ast.Constant) and annotation.value is None:
        return annotation
    # Already "X | None"
    if isinstance(annotation, ast.BinOp) and isinstance(annotation.right, ast.Constant) and annotation.right.value is None:
        return annotation
    return _union_expr([annotation, _const(None)])


def _status_test(variant: ResponseVariant) -> ast.expr | None:
    status_code = _attr('response', 'status_code')
    match variant.status.kind:
        case 'exact':
            return ast.Compare(left=status_code, ops=[ast.Eq()], comparators=[_const(variant.status.value)])
        case 'range':
            return ast.Compare(
                left=ast.BinOp(left=status_code, op=ast.FloorDiv(), right=_const(100)),
                ops=[ast.Eq()],
                comparators=[_const(variant.status.value)],
            )
        case _:
            return None


def _decode(variant: ResponseVariant, annotate: Annotate) -> ast.expr:
    match variant.content:
        case ContentKind.JSON:
            return _call(_name('decode_json'), [annotate(variant.descriptor), _name('response')])
        case ContentKind.TEXT:
            return _attr('response', 'text')
        case ContentKind.BINARY:
            return _attr('response', 'content')
        case _:
            return _const(None)


def ordered_responses(operation: Operation) -> list[ResponseVariant]:
    """Exact codes first, then ranges, then ``default``; declaration order within each."""
    return sorted(operation.responses, key=lambda variant: variant.status.precedence)


def build_response_handling(operation: Operation, annotate: Annotate) -> list[ast.stmt]:
    statements: list[ast.stmt] = []
    for variant in ordered_responses(operation):
        test = _status_test(variant)
        returned = ast.Return(value=_decode(variant, annotate))
        if test is None:
            statements.append(returned)
            return statements
        statements.append(ast.If(test=test, body=[returned], orelse=[]))
    statements.append(ast.Return(value=_call(_name('UnrecognizedStatus'), [_name('response')])))
    return statements


def build_return_annotation(operation: Operation, annotate: Annotate) -> ast.expr:
    types: list[ast.expr] = []
    seen: set[str] = set()
    has_default = False
    for variant in ordered_responses(operation):
        has_default = has_default or variant.status.kind == 'default'
        if variant.content is ContentKind.EMPTY:
            expr = _const(None)
        else:
            expr = annotate(variant.descriptor)
        key = ast.dump(expr)
        if key not in seen:
            seen.add(key)
            types.append(expr)
    if not has_default:
        types.append(_name('UnrecognizedStatus'))
    return _union_expr(types)


def build_docstring(operation: Operation) -> str | None:
    sections = [text.strip() for text in (operation.summary, operation.description) if text and text.strip()]
    if len(sections) == 2 and sections[0] == sections[1]:
        sections.pop()
    if operation.deprecated:
        sections.append('Deprecated: this operation may be removed in a future version of the API.')
    if not sections:
        return None
    return clean_docstring('\n\n'.join(sections))


def request_method(operation: Operation, annotate: Annotate) -> tuple[ast.FunctionDef, dict[str, set[str]]]:
    """Build the client method of one operation.

    Returns:
        The method definition and the runtime names it uses.
    """
    used = {'UnrecognizedStatus'}
    args, kwonlyargs, kw_defaults = get_arguments(operation, annotate)

    body: list[ast.stmt] = []
    docstring = build_docstring(operation)
    if docstring:
        body.append(_docstring(docstring))

    by_location: dict[ParameterLocation, list[Parameter]] = {location: [] for location in ParameterLocation}
    for parameter in operation.parameters:
        by_location[parameter.location].append(parameter)
    if operation.parameters:
        used.add('SerializationStrategy')

    substitutions = {p.name: _serialize(p) for p in by_location[ParameterLocation.PATH]}
    if substitutions:
        used.add('serialize_path')
    body.append(_assign(_name('path'), template_expr(operation.path, substitutions)))

    request_keywords: list[ast.keyword] = []

    if by_location[ParameterLocation.QUERY]:
        used.add('serialize_query')
        body.append(
            ast.AnnAssign(
                target=ast.Name(id='params', ctx=ast.Store()),
                annotation=_subscript('list', _subscript('tuple', ast.Tuple(elts=[_name('str'), _name('str')], ctx=ast.Load()))),
                value=ast.List(elts=[], ctx=ast.Load()),
                simple=1,
            )
        )
        for parameter in by_location[ParameterLocation.QUERY]:
            # serialize_query drops None values itself
            body.append(ast.Expr(value=_call(_attr('params', 'extend'), [_serialize(parameter)])))
        request_keywords.append(_keyword('params', _name('params')))

    content_type = None
    if operation.body is not None and operation.body.encoding in (BodyEncoding.BINARY, BodyEncoding.TEXT):
        content_type = operation.body.media_type

    if by_location[ParameterLocation.HEADER] or content_type:
        if by_location[ParameterLocation.HEADER]:
            used.add('serialize_header')
        initial = ast.Dict(keys=[], values=[])
        if content_type:
            initial = ast.Dict(keys=[_const('Content-Type')], values=[_const(content_type)])
        body.append(
            ast.AnnAssign(
                target=ast.Name(id='headers', ctx=ast.Store()),
                annotation=_subscript('dict', ast.Tuple(elts=[_name('str'), _name('str')], ctx=ast.Load())),
                value=initial,
                simple=1,
            )
        )
        for parameter in by_location[ParameterLocation.HEADER]:
            target = ast.Subscript(value=_name('headers'), slice=_const(parameter.name), ctx=ast.Store())
            body.append(_guarded(parameter, ast.Assign(targets=[target], value=_serialize(parameter))))
        request_keywords.append(_keyword('headers', _name('headers')))

    if by_location[ParameterLocation.COOKIE]:
        used.add('serialize_cookie')
        body.append(
            ast.AnnAssign(
                target=ast.Name(id='cookies', ctx=ast.Store()),
                annotation=_subscript('dict', ast.Tuple(elts=[_name('str'), _name('str')], ctx=ast.Load())),
                value=ast.Dict(keys=[], values=[]),
                simple=1,
            )
        )
        for parameter in by_location[ParameterLocation.COOKIE]:
            target = ast.Subscript(value=_name('cookies'), slice=_const(parameter.name), ctx=ast.Store())
            body.append(_guarded(parameter, ast.Assign(targets=[target], value=_serialize(parameter))))
        request_keywords.append(_keyword('cookies', _name('cookies')))

    if operation.body is not None:
        used.update({'encode_body', 'BodyEncoding'})
        encoded = _call(
            _name('encode_body'),
            [_attr('BodyEncoding', operation.body.encoding.name), _name('body')],
        )
        request_keywords.append(_keyword(None, encoded))

    body.append(
        _assign(
            _name('response'),
            _call(
                _attr(_attr('self', '_client'), 'request'),
                [_const(operation.method.upper()), _name('path')],
                request_keywords,
            ),
        )
    )

    if any(variant.content is ContentKind.JSON for variant in operation.responses):
        used.add('decode_json')
    body.extend(build_response_handling(operation, annotate))

    fn = _func(
        name=operation.method_name,
        args=args,
        body=body,
        returns=build_return_annotation(operation, annotate),
        kwonlyargs=kwonlyargs,
        kw_defaults=kw_defaults,
    )
    return fn, {RUNTIME_MODULE: used}


def client_init() -> ast.FunctionDef:
    return _func(
        name='__init__',
        args=[_argument('self'), _argument('client', _name('ApiClient'))],
        body=[_assign(_attr('self', '_client'), _name('client'))],
        returns=_const(None),
    )


# =============================================================================
# Server factories
# =============================================================================


def server_factory_names(servers: list[dict], reserved: set[str]) -> list[str]:
    """Name one factory per server entry after its description.

    The word "servers" is dropped from the description; an entry without a
    usable description is named ``server_<n>`` (1-based).
    """
    names = []
    taken = set(reserved)
    for index, server in enumerate(servers, 1):
        description = str(server.get('description') or '')
        description = re.sub(r'\bservers?\b', ' ', description, flags=re.IGNORECASE)
        name = to_snake_case(description) or f'server_{index}'
        if name.startswith('_'):
            name = f'server{name}'
        candidate, suffix = name, 2
        while candidate in taken:
            candidate = f'{name}_{suffix}'
            suffix += 1
        taken.add(candidate)
        names.append(candidate)
    return names


def server_factory(
    name: str, server: dict, client_class: str
) -> tuple[ast.FunctionDef, dict[str, set[str]]]:
    """Build ``name(*, var=default, **options) -> Client`` for one server entry."""
    url = str(server.get('url') or '')
    variables = server.get('variables') or {}

    kwonlyargs = []
    kw_defaults = []
    substitutions: dict[str, ast.expr] = {}
    for variable, spec in variables.items():
        python_name = to_snake_case(variable) or 'variable'
        if python_name == 'options':
            python_name = 'options_'
        kwonlyargs.append(_argument(python_name, _name('str')))
        default = (spec or {}).get('default')
        kw_defaults.append(_const(str(default) if default is not None else ''))
        substitutions[variable] = _name(python_name)

    body: list[ast.stmt] = []
    description = str(server.get('description') or '').strip()
    docstring = f'{description}: {url}' if description else f'Client for {url}'
    body.append(_docstring(clean_docstring(docstring)))
    body.append(
        ast.Return(
            value=_call(
                _name(client_class),
                [
                    _call(
                        _name('ApiClient'),
                        [template_expr(url, substitutions)],
                        [_keyword(None, _name('options'))],
                    )
                ],
            )
        )
    )

    fn = _func(
        name=name,
        args=[],
        body=body,
        returns=_name(client_class),
        kwargs=_argument('options', _name('Any')),
        kwonlyargs=kwonlyargs,
        kw_defaults=kw_defaults,
    )
    return fn, {RUNTIME_MODULE: {'ApiClient'}, 'typing': {'Any'}}
