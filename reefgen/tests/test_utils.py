"""Test utility functions."""

import ast

import pytest

from reefgen.codegen.endpoints import server_factory_names, template_expr
from reefgen.codegen.generator import enum_member_names
from reefgen.codegen.utils import (
    is_url,
    sanitize_identifier,
    sanitize_parameter_field_name,
    to_snake_case,
)


class TestIsUrl:
    """Test is_url function."""

    def test_valid_urls(self):
        """Test valid HTTP and HTTPS URLs."""
        assert is_url('http://example.com') is True
        assert is_url('https://api.example.com/v1/openapi.json') is True

    def test_invalid_urls(self):
        """Test local paths and malformed URLs."""
        assert is_url('example.com') is False
        assert is_url('./openapi.yaml') is False
        assert is_url('https://') is False
        assert is_url('http://[invalid') is False


class TestSanitizeIdentifier:
    """Test sanitize_identifier function."""

    @pytest.mark.parametrize(
        'name,expected',
        [
            ('Pet', 'Pet'),
            ('pet store', 'PetStore'),
            ('new-pet', 'NewPet'),
            ('api.v1.Pet', 'ApiV1Pet'),
            ('2fa', '_2fa'),
            ('Any', 'AnyModel'),
            ('', 'UnnamedType'),
            ('---', 'UnnamedType'),
        ],
    )
    def test_sanitize_identifier(self, name, expected):
        """Test class names built from schema names."""
        assert sanitize_identifier(name) == expected


class TestSnakeCase:
    """Test to_snake_case function."""

    @pytest.mark.parametrize(
        'name,expected',
        [
            ('listPets', 'list_pets'),
            ('HTTPResponseCode', 'http_response_code'),
            ('X-Request-Id', 'x_request_id'),
            ('get_/pets/{petId}', 'get_pets_pet_id'),
            ('class', 'class_'),
            ('2fa', '_2fa'),
            ('__', ''),
        ],
    )
    def test_to_snake_case(self, name, expected):
        """Test method and argument names."""
        assert to_snake_case(name) == expected

    def test_parameter_field_name(self):
        """Test sanitizing wire names into field names."""
        assert sanitize_parameter_field_name('first name') == 'first_name'
        assert sanitize_parameter_field_name('import') == 'import_'
        assert sanitize_parameter_field_name('$$') == 'field'
        with pytest.raises(ValueError):
            sanitize_parameter_field_name('')


class TestEnumMemberNames:
    """Test enum member naming."""

    def test_string_values(self):
        """Test upper snake case members."""
        assert enum_member_names(('available', 'on-hold', 'soldOut')) == ['AVAILABLE', 'ON_HOLD', 'SOLD_OUT']

    def test_integer_values(self):
        """Test members for integer values."""
        assert enum_member_names((1, -1, 0)) == ['VALUE_1', 'VALUE_MINUS_1', 'VALUE_0']

    def test_unusable_values(self):
        """Test values that do not start with a letter."""
        assert enum_member_names(('1st', '', '-')) == ['VALUE_1ST', 'VALUE', 'VALUE_2']

    def test_duplicates_are_suffixed(self):
        """Test that values sanitizing to one name stay distinct."""
        assert enum_member_names(('a-b', 'a_b', 'A B')) == ['A_B', 'A_B_2', 'A_B_3']


class TestServerFactoryNames:
    """Test naming of server factory functions."""

    def test_names_from_descriptions(self):
        """Test that the word server is dropped from descriptions."""
        servers = [
            {'url': 'https://a', 'description': 'Production server'},
            {'url': 'https://b', 'description': 'Staging Servers'},
            {'url': 'https://c'},
        ]

        assert server_factory_names(servers, set()) == ['production', 'staging', 'server_3']

    def test_reserved_and_duplicate_names(self):
        """Test that taken names get a numeric suffix."""
        servers = [
            {'url': 'https://a', 'description': 'Pet'},
            {'url': 'https://b', 'description': 'Pet'},
        ]

        assert server_factory_names(servers, {'pet'}) == ['pet_2', 'pet_3']


class TestTemplateExpr:
    """Test building URL templates as expressions."""

    def test_substitution(self):
        """Test that placeholders become concatenated expressions."""
        expr = template_expr('/pets/{petId}/toys', {'petId': ast.Name(id='pet_id', ctx=ast.Load())})

        assert ast.unparse(expr) == "'/pets/' + pet_id + '/toys'"

    def test_unknown_placeholder_stays_literal(self):
        """Test that placeholders without a value are kept as text."""
        expr = template_expr('https://{region}.example.com', {})

        assert ast.unparse(expr) == "'https://{region}.example.com'"
