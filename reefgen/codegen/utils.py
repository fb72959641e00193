import keyword
import re
import unicodedata
from urllib.parse import urlparse

__all__ = (
    'is_url',
    'sanitize_identifier',
    'sanitize_parameter_field_name',
    'to_snake_case',
    'RESERVED_CLASS_NAMES',
)

# Names imported into generated modules; a generated class may not shadow them.
RESERVED_CLASS_NAMES = frozenset(
    {
        'Any',
        'ApiClient',
        'BaseModel',
        'BodyEncoding',
        'ConfigDict',
        'Enum',
        'Field',
        'Optional',
        'RootModel',
        'SerializationStrategy',
        'UnrecognizedStatus',
        'Union',
    }
)


def capitalize(input_string):
    if not input_string:
        return ''
    return input_string[0].upper() + input_string[1:]


def is_url(text):
    try:
        result = urlparse(text)
        return all([result.scheme, result.netloc])
    except ValueError:
        return False


def remove_accents(input_str):
    nfkd_form = unicodedata.normalize('NFKD', input_str)
    return ''.join(c for c in nfkd_form if not unicodedata.combining(c))


def sanitize_name_python_keywords(name: str) -> str:
    if keyword.iskeyword(name) or keyword.issoftkeyword(name):
        return f'{name}_'
    return name


def sanitize_parameter_field_name(name: str) -> str:
    """Sanitize parameter or field names to be valid Python identifiers.

    - Replace spaces, hyphens and dots with underscores
    - Remove other invalid characters
    - Ensure it doesn't start with a digit
    - Append an underscore to Python keywords
    """
    if not name:
        raise ValueError('Name cannot be empty')

    sanitized = re.sub(r'[-\s.]+', '_', remove_accents(name))
    sanitized = re.sub(r'[^A-Za-z0-9_]', '', sanitized)

    if sanitized and sanitized[0].isdigit():
        sanitized = '_' + sanitized
    return sanitize_name_python_keywords(sanitized) if sanitized else 'field'


def to_snake_case(name: str) -> str:
    """Convert camelCase, PascalCase, kebab-case or spaced text to snake_case.

    Examples:
        >>> to_snake_case('listPets')
        'list_pets'
        >>> to_snake_case('HTTPResponseCode')
        'http_response_code'
    """
    text = remove_accents(name)
    text = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', text)
    text = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', text)
    text = re.sub(r'[^A-Za-z0-9]+', '_', text)
    text = text.strip('_').lower()
    if not text:
        return ''
    if text[0].isdigit():
        text = '_' + text
    return sanitize_name_python_keywords(text)


def sanitize_identifier(name: str) -> str:
    """Convert a string into a valid PascalCase class name.

    - Split on any non-alphanumeric character
    - Capitalize each part and join (PascalCase)
    - Ensure it doesn't start with a digit
    - Avoid names the generated modules import
    """
    if not name:
        return 'UnnamedType'

    parts = re.sub(r'[^A-Za-z0-9]+', '_', remove_accents(name)).split('_')
    sanitized = ''.join(capitalize(part) for part in parts if part)

    if sanitized and sanitized[0].isdigit():
        sanitized = '_' + sanitized

    if sanitized in RESERVED_CLASS_NAMES:
        sanitized += 'Model'

    return sanitized or 'UnnamedType'
