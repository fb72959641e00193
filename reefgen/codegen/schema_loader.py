"""Reading OpenAPI documents into a ``Document``.

Sources are local files (relative to a base path) or http(s) URLs, in JSON
or YAML. Only OpenAPI 3.0 is modeled; 3.1 documents are accepted with a
warning and Swagger 2.0 is rejected.
"""

import json
import logging
from pathlib import Path
from typing import Any

import httpx
import yaml

from reefgen.codegen.document import Document
from reefgen.codegen.utils import is_url
from reefgen.exceptions import SchemaLoadError, SchemaValidationError

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = ('.yaml', '.yml')


def _parse(text: str, as_yaml: bool) -> Any:
    return yaml.safe_load(text) if as_yaml else json.loads(text)


class SchemaLoader:
    """Loads OpenAPI documents from URLs or file paths.

    Example:
        >>> loader = SchemaLoader(base_path='specs')
        >>> document = loader.load('petstore.yaml')
        >>> document.title
        'Petstore'
    """

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        base_path: str | Path | None = None,
    ):
        """
        Args:
            http_client: Client used for URL sources. A short-lived client is
                created per request when omitted.
            base_path: Directory that relative file sources are read from.
                Defaults to the working directory.
        """
        self._http_client = http_client
        self._base_path = Path(base_path) if base_path else Path.cwd()

    def load(self, source: str) -> Document:
        """Read, parse and check the document at ``source``.

        Raises:
            SchemaLoadError: If the source cannot be read or parsed.
            SchemaValidationError: If the content is not an OpenAPI 3.x document.
        """
        try:
            if is_url(source) and source.startswith(('http://', 'https://')):
                text, as_yaml = self._fetch(source)
            else:
                text, as_yaml = self._read(source)
            content = _parse(text, as_yaml)
        except SchemaLoadError:
            raise
        except (OSError, httpx.HTTPError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise SchemaLoadError(source, cause=e)

        return self.from_content(content, source)

    def from_content(self, content: Any, source: str = '<memory>') -> Document:
        """Check already parsed content and wrap it in a ``Document``."""
        if not isinstance(content, dict):
            raise SchemaValidationError(source, ['document root must be a mapping'])

        if 'swagger' in content:
            raise SchemaValidationError(
                source,
                [f'Swagger {content["swagger"]} is not supported; convert the document to OpenAPI 3.0'],
            )
        declared = str(content.get('openapi', ''))
        if not declared.startswith('3.'):
            raise SchemaValidationError(source, [f"unknown OpenAPI version '{declared}'"])
        if not declared.startswith('3.0'):
            logger.warning(f'{source} declares OpenAPI {declared}; only the OpenAPI 3.0 subset is interpreted')
        if not isinstance(content.get('paths', {}), dict):
            raise SchemaValidationError(source, ["'paths' must be a mapping"])

        logger.debug(f'Loaded OpenAPI {declared} document from {source}')
        return Document(content, source)

    def _fetch(self, url: str) -> tuple[str, bool]:
        if self._http_client is not None:
            response = self._http_client.get(url)
        else:
            response = httpx.get(url, follow_redirects=True, timeout=30.0)
        response.raise_for_status()
        as_yaml = 'yaml' in response.headers.get('content-type', '') or url.endswith(_YAML_SUFFIXES)
        return response.text, as_yaml

    def _read(self, source: str) -> tuple[str, bool]:
        path = Path(source)
        if not path.is_absolute():
            path = self._base_path / path
        if not path.is_file():
            raise SchemaLoadError(source, cause=FileNotFoundError(f'File not found: {path}'))
        return path.read_text(encoding='utf-8'), path.suffix.lower() in _YAML_SUFFIXES
