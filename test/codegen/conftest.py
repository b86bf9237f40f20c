"""
Pytest configuration and fixtures for protobuf code generation tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "tools"))

from protobuf_settings import ProtobufSettings

from .helpers import FakeProtoc, create_proto


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that run a (fake) protoc subprocess"
    )


@pytest.fixture
def workspace() -> Generator[Path, None, None]:
    """Temporary project directory."""
    with tempfile.TemporaryDirectory(prefix="protobuf-test-") as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def fake_protoc(workspace) -> FakeProtoc:
    return FakeProtoc(workspace / "bin")


@pytest.fixture
def failing_protoc(workspace) -> FakeProtoc:
    return FakeProtoc(workspace / "bin-failing", exit_code=1)


@pytest.fixture
def proto_sources(workspace):
    """Two schema files in the default source directory."""
    source = workspace / "src" / "main" / "protobuf"
    return [
        create_proto(source, "test/person.proto"),
        create_proto(source, "address.proto"),
    ]


@pytest.fixture
def settings(workspace, fake_protoc) -> ProtobufSettings:
    """Default settings for the workspace using the fake compiler."""
    return ProtobufSettings.resolve({"protoc": str(fake_protoc.path)}, workspace)


@pytest.fixture
def write_config(workspace):
    """Write a YAML settings file into the workspace."""
    def _write(data, name: str = "protobuf.yaml") -> Path:
        path = workspace / name
        with open(path, "w") as f:
            yaml.safe_dump(data, f)
        return path
    return _write
