"""Tests for reference resolution and the reference graph."""

import pytest

from reefgen.codegen.diagnostics import DiagnosticKind
from reefgen.codegen.document import Document
from reefgen.codegen.ir import Object, Ref, SchemaRef, Unknown
from reefgen.codegen.schema_resolver import ReferenceResolver
from reefgen.config import GeneratorConfig
from reefgen.exceptions import ResolutionError, Unresolved

from .fixtures import CYCLES_SPEC, MINIMAL_OPENAPI_SPEC, PETSTORE_SPEC, spec_copy

NODE = '#/components/schemas/Node'
PING = '#/components/schemas/Ping'
PONG = '#/components/schemas/Pong'


def make_resolver(spec: dict) -> ReferenceResolver:
    return ReferenceResolver(Document.from_mapping(spec), GeneratorConfig())


class TestResolve:
    """Tests for resolving references into canonical schemas."""

    def test_resolve_named(self):
        """Test resolving a component schema."""
        resolver = make_resolver(PETSTORE_SPEC)

        outcome = resolver.resolve(SchemaRef.named('#/components/schemas/Pet'))

        assert isinstance(outcome.value.schema, Object)
        assert [f.name for f in outcome.value.schema.fields] == ['id', 'name', 'tag', 'status']
        assert outcome.diagnostics == ()

    def test_resolution_is_memoized(self):
        """Test that one path is composed once and the result reused."""
        resolver = make_resolver(PETSTORE_SPEC)

        first = resolver.resolve_path('#/components/schemas/Pet')
        second = resolver.resolve_path('#/components/schemas/Pet/')

        assert first is second
        assert resolver.resolved_paths() == ['#/components/schemas/Pet']

    def test_nested_references_stay_references(self):
        """Test that references inside a schema are kept as Ref values."""
        resolver = make_resolver(PETSTORE_SPEC)

        pet = resolver.resolve_path('#/components/schemas/Pet').value.schema

        assert pet.field_named('status').slot.schema == Ref('#/components/schemas/Status')

    def test_missing_reference(self):
        """Test that a reference to a missing node raises Unresolved."""
        resolver = make_resolver(PETSTORE_SPEC)

        with pytest.raises(Unresolved):
            resolver.resolve_path('#/components/schemas/Missing')

    def test_follow_alias_chain(self):
        """Test that follow walks alias references to the concrete schema."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['components']['schemas']['PetAlias'] = {'$ref': '#/components/schemas/Pet'}
        spec['components']['schemas']['PetAliasAlias'] = {
            '$ref': '#/components/schemas/PetAlias',
            'nullable': True,
        }
        resolver = make_resolver(spec)

        path, outcome = resolver.follow('#/components/schemas/PetAliasAlias')

        assert path == '#/components/schemas/Pet'
        assert isinstance(outcome.value.schema, Object)
        assert outcome.value.nullable

    def test_follow_alias_loop_degrades(self):
        """Test that an alias loop without a concrete schema becomes Unknown."""
        spec = spec_copy(MINIMAL_OPENAPI_SPEC)
        spec['components'] = {
            'schemas': {
                'A': {'$ref': '#/components/schemas/B'},
                'B': {'$ref': '#/components/schemas/A'},
            }
        }
        resolver = make_resolver(spec)

        _, outcome = resolver.follow('#/components/schemas/A')

        assert isinstance(outcome.value.schema, Unknown)
        assert outcome.diagnostics[0].kind is DiagnosticKind.UNSUPPORTED_CONSTRUCT

    def test_deref_parameter(self):
        """Test following a reference to a reusable parameter."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['components']['parameters'] = {
            'Offset': {'name': 'offset', 'in': 'query', 'schema': {'type': 'integer'}}
        }
        spec['paths']['/pets']['get']['parameters'].append(
            {'$ref': '#/components/parameters/Offset'}
        )
        resolver = make_resolver(spec)

        node = resolver.document.lookup('#/paths/~1pets/get/parameters/2')
        parameter = resolver.deref(node)

        assert parameter.scalar('name') == 'offset'
        assert parameter.pointer == '/components/parameters/Offset'

    def test_deref_loop(self):
        """Test that a looping non-schema reference raises."""
        spec = spec_copy(MINIMAL_OPENAPI_SPEC)
        spec['components'] = {
            'responses': {
                'A': {'$ref': '#/components/responses/B'},
                'B': {'$ref': '#/components/responses/A'},
            }
        }
        resolver = make_resolver(spec)

        with pytest.raises(ResolutionError, match='reference cycle'):
            resolver.deref(resolver.document.lookup('#/components/responses/A'))


class TestReferenceGraph:
    """Tests for cycle analysis."""

    def test_self_reference_is_recursive(self):
        """Test that a self-referencing schema is detected as recursive."""
        resolver = make_resolver(CYCLES_SPEC)

        assert resolver.is_recursive(NODE)
        assert resolver.in_same_cycle(NODE, NODE)

    def test_mutual_recursion(self):
        """Test that mutually recursive schemas share one cycle."""
        resolver = make_resolver(CYCLES_SPEC)

        assert resolver.is_recursive(PING)
        assert resolver.is_recursive(PONG)
        assert resolver.in_same_cycle(PING, PONG)
        assert not resolver.in_same_cycle(PING, NODE)

    def test_acyclic_schema(self):
        """Test that a schema without cycles is not recursive."""
        resolver = make_resolver(PETSTORE_SPEC)

        assert not resolver.is_recursive('#/components/schemas/Pet')
        assert not resolver.in_same_cycle('#/components/schemas/Pet', '#/components/schemas/Status')

    def test_cycles_lists_components(self):
        """Test that analyze reports each cycle once with sorted members."""
        resolver = make_resolver(CYCLES_SPEC)

        diagnostics = resolver.analyze([(NODE, NODE), (PING, PING)])

        assert diagnostics == []
        assert sorted(resolver.cycles()) == [(NODE,), (PING, PONG)]

    def test_analyze_reports_unresolved(self):
        """Test that a missing target is reported with the referring location."""
        spec = spec_copy(PETSTORE_SPEC)
        spec['components']['schemas']['Pet']['properties']['owner'] = {
            '$ref': '#/components/schemas/Owner'
        }
        resolver = make_resolver(spec)

        diagnostics = resolver.analyze([('#/components/schemas/Pet', '/components/schemas/Pet')])

        assert len(diagnostics) == 1
        assert diagnostics[0].kind is DiagnosticKind.UNRESOLVED
        assert diagnostics[0].is_error
        assert diagnostics[0].pointer == '/components/schemas/Pet/properties/owner'
