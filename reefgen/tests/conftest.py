import importlib
import sys

import pytest

from reefgen.codegen.codegen import GenerationResult
from reefgen.codegen.emitter import FileEmitter


@pytest.fixture
def import_generated(tmp_path, monkeypatch):
    """Write a generation result as a package and import it.

    Returns a callable ``(result, package) -> (models, client)``. The package
    is removed from ``sys.modules`` again after the test.
    """
    imported: list[str] = []

    def load(result: GenerationResult, package: str):
        FileEmitter(tmp_path / package).emit_package(result.modules)
        monkeypatch.syspath_prepend(str(tmp_path))
        imported.append(package)
        models = importlib.import_module(f'{package}.models')
        client = importlib.import_module(f'{package}.client')
        return models, client

    yield load

    for name in list(sys.modules):
        if any(name == package or name.startswith(f'{package}.') for package in imported):
            del sys.modules[name]
