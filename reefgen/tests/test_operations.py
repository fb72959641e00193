"""Tests for operation extraction and parameter serialization strategies."""

import pytest

from reefgen.codegen.codegen import generate_modules
from reefgen.codegen.diagnostics import DiagnosticKind
from reefgen.codegen.document import Document
from reefgen.codegen.ir import (
    ContentKind,
    Existing,
    Generated,
    Object,
    ParameterLocation,
    StatusPattern,
)
from reefgen.codegen.operations import OperationBuilder, resolve_strategy
from reefgen.codegen.overrides import OverrideTable
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.codegen.type_mapper import TypeMapper
from reefgen.config import GeneratorConfig
from reefgen.exceptions import NameCollision, SerializationStrategyUnresolvable
from reefgen.runtime import BodyEncoding, SerializationStrategy

from .fixtures import PARAMETERS_SPEC, PETSTORE_SPEC, spec_copy

QUERY = ParameterLocation.QUERY
PATH = ParameterLocation.PATH


def make_builder(spec: dict) -> OperationBuilder:
    config = GeneratorConfig()
    resolver = ReferenceResolver(Document.from_mapping(spec), config)
    return OperationBuilder(resolver.document, resolver, config)


def collect_all(builder: OperationBuilder):
    return [builder.collect(*item) for item in builder.operations()]


class TestResolveStrategy:
    """Tests for picking a serialization strategy from style and explode."""

    @pytest.mark.parametrize(
        'location,style,explode,shape,expected',
        [
            (QUERY, None, None, 'scalar', SerializationStrategy.FORM_EXPLODED),
            (QUERY, 'form', False, 'array', SerializationStrategy.FORM),
            (QUERY, 'spaceDelimited', False, 'array', SerializationStrategy.SPACE_DELIMITED),
            (QUERY, 'pipeDelimited', None, 'array', SerializationStrategy.PIPE_DELIMITED),
            (QUERY, 'deepObject', True, 'object', SerializationStrategy.DEEP_OBJECT),
            (PATH, None, None, 'scalar', SerializationStrategy.SIMPLE),
            (PATH, 'label', True, 'array', SerializationStrategy.LABEL_EXPLODED),
            (PATH, 'matrix', False, 'array', SerializationStrategy.MATRIX),
            (ParameterLocation.HEADER, None, None, 'scalar', SerializationStrategy.SIMPLE),
            (ParameterLocation.COOKIE, None, None, 'scalar', SerializationStrategy.FORM_EXPLODED),
        ],
    )
    def test_resolvable(self, location, style, explode, shape, expected):
        """Test the defined style/explode combinations."""
        assert resolve_strategy('p', location, style, explode, shape) == expected

    @pytest.mark.parametrize(
        'location,style,explode,shape',
        [
            (QUERY, 'deepObject', False, 'object'),
            (QUERY, 'deepObject', True, 'array'),
            (QUERY, 'spaceDelimited', True, 'array'),
            (QUERY, 'pipeDelimited', False, 'scalar'),
            (QUERY, 'matrix', False, 'scalar'),
            (PATH, 'form', False, 'scalar'),
            (ParameterLocation.HEADER, 'label', False, 'scalar'),
        ],
    )
    def test_unresolvable(self, location, style, explode, shape):
        """Test that undefined combinations raise instead of guessing."""
        with pytest.raises(SerializationStrategyUnresolvable) as exc_info:
            resolve_strategy('p', location, style, explode, shape, '/paths/x')

        assert exc_info.value.style == style
        assert exc_info.value.pointer == '/paths/x'


class TestCollect:
    """Tests for collecting operations from the document."""

    def test_operations_in_document_order(self):
        """Test that operations are yielded per path, in method order."""
        builder = make_builder(PETSTORE_SPEC)

        items = [(path, method) for path, method, _, _ in builder.operations()]

        assert items == [
            ('/pets', 'get'),
            ('/pets', 'post'),
            ('/pets/{petId}', 'get'),
            ('/pets/{petId}', 'delete'),
        ]

    def test_path_item_parameters_are_inherited(self):
        """Test that parameters declared on the path item apply to each operation."""
        builder = make_builder(PETSTORE_SPEC)

        drafts = collect_all(builder)
        show = drafts[2].value

        assert [p.name for p in show.parameters] == ['petId']
        assert show.parameters[0].required
        assert show.parameters[0].strategy is SerializationStrategy.SIMPLE

    def test_operation_parameter_replaces_path_item_parameter(self):
        """Test that an operation parameter overrides one with the same name and location."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['paths']['/pets/{petId}']['get']['parameters'] = [
            {'name': 'petId', 'in': 'path', 'required': True, 'schema': {'type': 'integer'}}
        ]
        builder = make_builder(spec)

        show = collect_all(builder)[2].value

        assert len(show.parameters) == 1
        assert show.parameters[0].slot.schema.kind == 'integer'

    def test_body_and_responses(self):
        """Test the body and response drafts of an operation."""
        builder = make_builder(PETSTORE_SPEC)

        drafts = collect_all(builder)
        create = drafts[1].value
        delete = drafts[3].value

        assert create.body.encoding is BodyEncoding.JSON
        assert create.body.required
        assert [r.status for r in create.responses] == [StatusPattern('exact', 201)]
        assert delete.responses[0].content is ContentKind.EMPTY
        assert delete.deprecated

    def test_text_and_range_responses(self):
        """Test text content and status ranges."""
        builder = make_builder(PARAMETERS_SPEC)

        draft = collect_all(builder)[0].value

        assert [(str(r.status), r.content) for r in draft.responses] == [
            ('200', ContentKind.TEXT),
            ('4XX', ContentKind.JSON),
        ]
        assert isinstance(draft.responses[1].slot.schema, Object)

    def test_missing_path_parameter_is_synthesized(self):
        """Test that a template variable without a parameter becomes a string parameter."""
        spec = spec_copy(PETSTORE_SPEC)
        del spec['paths']['/pets/{petId}']['parameters']
        builder = make_builder(spec)

        outcome = collect_all(builder)[2]

        assert [p.name for p in outcome.value.parameters] == ['petId']
        assert outcome.diagnostics[0].kind is DiagnosticKind.INVALID_DOCUMENT

    def test_body_on_get_is_flagged(self):
        """Test that a request body on GET produces a warning but is kept."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['paths']['/pets']['get']['requestBody'] = {
            'content': {'application/json': {'schema': {'type': 'object'}}}
        }
        builder = make_builder(spec)

        outcome = collect_all(builder)[0]

        assert outcome.value.body is not None
        assert [d.kind for d in outcome.diagnostics] == [DiagnosticKind.REQUEST_BODY_NOT_EXPECTED]

    def test_preferred_body_media_type(self):
        """Test that JSON is preferred over other media types."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['paths']['/pets']['post']['requestBody']['content'] = {
            'application/x-www-form-urlencoded': {'schema': {'$ref': '#/components/schemas/NewPet'}},
            'application/merge-patch+json': {'schema': {'$ref': '#/components/schemas/NewPet'}},
        }
        builder = make_builder(spec)

        body = collect_all(builder)[1].value.body

        assert body.encoding is BodyEncoding.JSON
        assert body.media_type == 'application/merge-patch+json'

    def test_unsupported_body_media_type(self):
        """Test that an unknown media type is sent as raw bytes with a warning."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['paths']['/pets']['post']['requestBody']['content'] = {
            'application/vnd.custom': {'schema': {'type': 'string'}}
        }
        builder = make_builder(spec)

        outcome = collect_all(builder)[1]

        assert outcome.value.body.encoding is BodyEncoding.BINARY
        assert outcome.diagnostics[0].kind is DiagnosticKind.UNSUPPORTED_MEDIA_TYPE

    def test_operation_id_fallback(self):
        """Test that an operation without operationId is named after method and path."""
        spec = spec_copy(PETSTORE_SPEC)
        del spec['paths']['/pets']['get']['operationId']
        builder = make_builder(spec)

        draft = collect_all(builder)[0].value

        assert draft.operation_id == 'get_/pets'
        assert builder.method_name(draft) == 'get_pets'


class TestBind:
    """Tests for binding drafts to type descriptors."""

    def bind_all(self, spec: dict):
        builder = make_builder(spec)
        config = builder.config
        mapper = TypeMapper(builder.resolver, OverrideTable.compile(config, builder.resolver), config)
        drafts = [outcome.value for outcome in collect_all(builder)]
        return builder, mapper, drafts

    def test_bind_operation(self):
        """Test that a bound operation carries descriptors and a method name."""
        builder, mapper, drafts = self.bind_all(PETSTORE_SPEC)

        operation = builder.bind(drafts[0], mapper)

        assert operation.method_name == 'list_pets'
        assert [p.python_name for p in operation.parameters] == ['limit', 'tags']
        assert operation.parameters[1].strategy is SerializationStrategy.FORM
        assert operation.responses[0].descriptor.args == (Generated('Pet', 'models'),)
        assert operation.responses[1].status.kind == 'default'

    def test_argument_names_avoid_reserved_names(self):
        """Test that parameters named like generated locals are renamed."""
        builder, mapper, drafts = self.bind_all(PARAMETERS_SPEC)

        operation = builder.bind(drafts[0], mapper)

        assert [p.python_name for p in operation.parameters] == [
            'item_id',
            'ids',
            'filter',
            'x_request_id',
            'session',
        ]
        assert operation.responses[0].descriptor == Existing('builtins.str')

    def test_duplicate_method_names(self):
        """Test that two operations with one method name collide."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['paths']['/pets']['post']['operationId'] = 'list_pets'
        builder, mapper, drafts = self.bind_all(spec)

        builder.bind(drafts[0], mapper)
        with pytest.raises(NameCollision):
            builder.bind(drafts[1], mapper)


class TestOperationsInPipeline:
    """Tests for operation diagnostics over a whole run."""

    def test_unresolvable_strategy_drops_operation(self):
        """Test that an undefined style combination is an error and the operation is skipped."""
        result = generate_modules(Document.from_mapping(PARAMETERS_SPEC))

        errors = result.report.errors()
        assert [e.kind for e in errors] == [DiagnosticKind.SERIALIZATION_STRATEGY_UNRESOLVABLE]
        assert errors[0].pointer == '/paths/~1reports/get/parameters/0'
        assert 'sort' in errors[0].message
        client = result.modules[1]
        assert [binding.name for binding in client.operations] == ['get_item']

    def test_invalid_location(self):
        """Test that an unknown parameter location is an error."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['paths']['/pets']['get']['parameters'].append(
            {'name': 'x', 'in': 'body', 'schema': {'type': 'string'}}
        )

        result = generate_modules(Document.from_mapping(spec))

        assert result.failed
        assert result.report.of_kind(DiagnosticKind.UNSUPPORTED_CONSTRUCT)
