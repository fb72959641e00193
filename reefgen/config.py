import os
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reefgen.exceptions import ConfigurationError

DEFAULT_FILENAMES = ['reefgen.yaml', 'reefgen.yml']


class OnUnsupported(StrEnum):
    ERROR = 'error'
    WARN = 'warn'


class OverrideConfig(BaseModel):
    """Routes every schema shaped like ``schema`` (or like ``component``) to an existing type."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = Field(
        ...,
        description='Qualified name of the existing type, e.g. "shared.ids.Base64Uuid".',
    )

    schema_: dict[str, Any] | None = Field(
        None,
        alias='schema',
        description='Inline schema whose shape is substituted. References resolve against the document.',
    )

    component: str | None = Field(
        None,
        description='Name of a component schema whose shape is substituted.',
    )

    @field_validator('type')
    @classmethod
    def _qualified(cls, value: str) -> str:
        module, _, name = value.rpartition('.')
        if not module or not name.isidentifier():
            raise ValueError(f"'{value}' is not a qualified name such as 'package.module.Type'")
        return value

    @model_validator(mode='after')
    def _one_target(self) -> 'OverrideConfig':
        if (self.schema_ is None) == (self.component is None):
            raise ValueError("an override needs exactly one of 'schema' or 'component'")
        return self


class GeneratorConfig(BaseModel):
    """Options consumed by the generation engine."""

    model_config = ConfigDict(frozen=True)

    module_name: str = Field(
        'models', description='Module that receives the generated type declarations.'
    )

    client_module: str = Field(
        'client', description='Module that receives the generated client class.'
    )

    client_class_name: str | None = Field(
        None,
        description='Name of the generated client class. Defaults to the document title + "Client".',
    )

    overrides: tuple[OverrideConfig, ...] = Field(
        (), description='Ordered shape overrides routed to existing types.'
    )

    max_composition_depth: int = Field(
        8, ge=1, description='Nesting depth of allOf/oneOf/anyOf beyond which a schema degrades.'
    )

    on_unsupported: OnUnsupported = Field(
        OnUnsupported.WARN,
        description='Whether unsupported constructs are errors or warnings (degraded to Any).',
    )

    workers: int = Field(4, ge=1, description='Size of the worker pool.')

    emit_all_components: bool = Field(
        False,
        description='Also declare component schemas that no operation references.',
    )

    @field_validator('module_name', 'client_module')
    @classmethod
    def _module_identifier(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"'{value}' is not a valid module name")
        return value


class DocumentConfig(GeneratorConfig):
    """Represents a single document to be processed."""

    source: str = Field(..., description='Path or URL to the OpenAPI document.')

    output: str = Field(..., description='Output directory for the generated code.')

    base_url: str | None = Field(
        None,
        description='Base URL used instead of the servers declared in the document.',
    )


class CodegenConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='REEFGEN_')

    documents: list[DocumentConfig] = Field(
        ..., description='List of OpenAPI documents to process.'
    )


def load_yaml(path: str | Path) -> dict:
    import yaml

    return yaml.safe_load(Path(path).read_text())


def _validate(data: Any, config_path: str) -> CodegenConfig:
    try:
        return CodegenConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f'Invalid configuration: {e}', config_path=config_path)


def get_config(path: str | None = None) -> CodegenConfig:
    """Load configuration from a file, the default files, or ``pyproject.toml``.

    Raises:
        ConfigurationError: If no configuration is found or it is invalid.
    """
    if path:
        if not Path(path).exists():
            raise ConfigurationError('Configuration file not found', config_path=path)
        return _validate(load_yaml(path), path)

    cwd = os.getcwd()

    for filename in DEFAULT_FILENAMES:
        candidate = Path(cwd) / filename
        if candidate.exists():
            return _validate(load_yaml(candidate), str(candidate))

    candidate = Path(cwd) / 'pyproject.toml'

    if candidate.exists():
        import tomllib

        pyproject = tomllib.loads(candidate.read_text())
        tools = pyproject.get('tool', {})

        if 'reefgen' in tools:
            return _validate(tools['reefgen'], str(candidate))

    raise ConfigurationError(
        f'No configuration found; create {DEFAULT_FILENAMES[0]} or a [tool.reefgen] table'
    )
