#!/usr/bin/env python3
"""
Protoc invocation for protobuf code generation.

Builds the protoc command line from include paths, output plugins and the
schema files found under a source directory, runs it, and collects the
files each plugin generated.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence, Union

from protobuf_plugins import ProtocPlugin

logger = logging.getLogger(__name__)


class ProtocError(Exception):
    """Base exception for protoc operations."""
    pass


class ProtocInvocationError(ProtocError):
    """Protoc could not be started."""
    pass


class ProtocExitError(ProtocError):
    """Protoc ran but returned a non-zero exit status."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"protoc returned exit code: {exit_code}")


def discover_schemas(source_directory: Union[str, Path]) -> List[Path]:
    """
    Find all .proto files below a directory.

    Args:
        source_directory: Directory searched recursively

    Returns:
        Sorted absolute paths; empty if the directory does not exist
    """
    source = Path(source_directory).absolute()
    if not source.is_dir():
        return []
    return sorted(p for p in source.rglob("*.proto") if p.is_file())


class ProtocCompiler:
    """Runs protoc as a child process."""

    def __init__(self, protoc: str = "protoc"):
        """
        Initialize the compiler.

        Args:
            protoc: Name or path of the protoc executable; bare names are
                looked up on PATH
        """
        self.protoc = protoc

    def build_arguments(self,
                        include_paths: Sequence[Union[str, Path]],
                        plugins: Sequence[ProtocPlugin],
                        schemas: Sequence[Union[str, Path]]) -> List[str]:
        """
        Build protoc arguments.

        Order is include paths, then each plugin's arguments in plugin
        order, then the schema files.
        """
        arguments = [f"-I{Path(p).absolute()}" for p in include_paths]
        for plugin in plugins:
            arguments.extend(plugin.args())
        arguments.extend(str(Path(s).absolute()) for s in schemas)
        return arguments

    def execute(self,
                source_directory: Union[str, Path],
                include_paths: Sequence[Union[str, Path]],
                plugins: Sequence[ProtocPlugin]) -> int:
        """
        Run protoc over every schema in the source directory.

        Returns:
            The protoc exit code

        Raises:
            ProtocInvocationError: If the command could not be built or started
        """
        try:
            schemas = discover_schemas(source_directory)
            command = [self.protoc] + self.build_arguments(include_paths, plugins, schemas)
            logger.debug("Running %s", " ".join(command))

            result = subprocess.run(command, capture_output=True, text=True, errors="replace")
        except Exception as e:
            raise ProtocInvocationError(
                f"error occurred while compiling protobuf files: {e}"
            ) from e

        for line in result.stdout.splitlines():
            logger.info(line)
        for line in result.stderr.splitlines():
            logger.error(line)

        return result.returncode

    def compile(self,
                source_directory: Union[str, Path],
                include_paths: Sequence[Union[str, Path]],
                plugins: Sequence[ProtocPlugin]) -> List[Path]:
        """
        Compile all schemas and collect the generated files.

        Args:
            source_directory: Directory holding the .proto sources
            include_paths: Directories protoc searches for imports, in order
            plugins: Output plugins to run

        Returns:
            Sorted union of every plugin's generated files

        Raises:
            ProtocInvocationError: If protoc could not be started
            ProtocExitError: If protoc returned a non-zero exit code
        """
        schemas = discover_schemas(source_directory)
        for plugin in plugins:
            Path(plugin.output_directory).mkdir(parents=True, exist_ok=True)

        if not schemas:
            # protoc rejects an empty file list
            logger.info("No protobuf files found in %s", source_directory)
            return []

        logger.info("Compiling %d protobuf files to %s",
                    len(schemas), ", ".join(str(p.output_directory) for p in plugins))
        for schema in schemas:
            logger.info("Compiling schema %s", schema)

        exit_code = self.execute(source_directory, include_paths, plugins)
        if exit_code != 0:
            raise ProtocExitError(exit_code)

        generated = set()
        for plugin in plugins:
            generated.update(plugin.generated())
        return sorted(generated)
