#!/usr/bin/env python3
"""
Protoc output plugin descriptors for protobuf code generation.

A plugin tells protoc which backend to run and where its output lands. Each
plugin carries a file filter that decides which files under its output
directory count as generated sources.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class PluginConfigError(ValueError):
    """Plugin or filter description is malformed."""
    pass


class FilterKind:
    """Supported strategies for selecting generated files."""
    EXTENSION = "extension"
    GLOB = "glob"

    ALL = (EXTENSION, GLOB)


@dataclass(frozen=True)
class FileFilter:
    """
    Selects generated files below a plugin output directory.

    ``extension`` filters match on the file suffix (".java", ".py"),
    ``glob`` filters match a file-name pattern ("*_pb2.py"). Both search
    the directory recursively.
    """
    kind: str
    pattern: str

    def __post_init__(self):
        if self.kind not in FilterKind.ALL:
            raise PluginConfigError(
                f"Unknown filter kind: {self.kind}. Supported kinds: {list(FilterKind.ALL)}"
            )
        if not self.pattern:
            raise PluginConfigError(f"Filter of kind '{self.kind}' requires a pattern")

    @classmethod
    def extension(cls, suffix: str) -> "FileFilter":
        if not suffix.startswith("."):
            suffix = "." + suffix
        return cls(FilterKind.EXTENSION, suffix)

    @classmethod
    def glob(cls, pattern: str) -> "FileFilter":
        return cls(FilterKind.GLOB, pattern)

    def matches(self, path: Path) -> bool:
        """Check a single file against the filter."""
        if self.kind == FilterKind.EXTENSION:
            return path.name.endswith(self.pattern)
        return path.match(self.pattern)

    def select(self, directory: Path) -> List[Path]:
        """
        Find matching files under a directory.

        Args:
            directory: Directory to search recursively

        Returns:
            Sorted list of matching files; empty if the directory is missing
        """
        directory = Path(directory)
        if not directory.is_dir():
            return []

        if self.kind == FilterKind.EXTENSION:
            candidates = directory.rglob(f"*{self.pattern}")
        else:
            candidates = directory.rglob(self.pattern)

        return sorted(p for p in candidates if p.is_file() and self.matches(p))

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "pattern": self.pattern}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileFilter":
        if not isinstance(data, dict):
            raise PluginConfigError(f"Filter must be a mapping, got: {data!r}")
        try:
            return cls(kind=data["kind"], pattern=data["pattern"])
        except KeyError as e:
            raise PluginConfigError(f"Filter is missing required key: {e.args[0]}") from e


@dataclass(frozen=True)
class ProtocPlugin:
    """A named protoc output target."""
    name: str
    output_directory: Path
    filter: FileFilter
    executable: Optional[Path] = None

    def args(self) -> List[str]:
        """
        Protoc arguments for this plugin.

        Returns:
            ``--<name>_out=<dir>`` followed by ``--plugin=protoc-gen-<name>=<exe>``
            when an external executable is configured
        """
        arguments = [f"--{self.name}_out={Path(self.output_directory).absolute()}"]
        if self.executable is not None:
            arguments.append(f"--plugin=protoc-gen-{self.name}={Path(self.executable).absolute()}")
        return arguments

    def generated(self) -> List[Path]:
        """Files currently present in the output directory that the filter selects."""
        return self.filter.select(self.output_directory)

    @property
    def is_builtin(self) -> bool:
        return self.executable is None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "output_directory": str(self.output_directory),
            "filter": self.filter.to_dict(),
        }
        if self.executable is not None:
            data["executable"] = str(self.executable)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_directory: Union[str, Path] = ".") -> "ProtocPlugin":
        """
        Build a plugin from a configuration mapping.

        Args:
            data: Mapping with name, output_directory, filter and optional executable
            base_directory: Directory that relative paths resolve against

        Returns:
            The plugin descriptor

        Raises:
            PluginConfigError: If a required key is missing or malformed
        """
        if not isinstance(data, dict):
            raise PluginConfigError(f"Plugin must be a mapping, got: {data!r}")

        for key in ("name", "output_directory", "filter"):
            if not data.get(key):
                raise PluginConfigError(f"Plugin {data.get('name', '<unnamed>')!r} is missing '{key}'")

        unknown = set(data) - {"name", "output_directory", "filter", "executable"}
        if unknown:
            raise PluginConfigError(f"Plugin {data['name']!r} has unknown keys: {sorted(unknown)}")

        base = Path(base_directory)
        executable = data.get("executable")
        return cls(
            name=data["name"],
            output_directory=base / data["output_directory"],
            filter=FileFilter.from_dict(data["filter"]),
            executable=base / executable if executable else None,
        )


def default_java_plugin(java_source: Path) -> ProtocPlugin:
    """The built-in java target used when no plugins are configured."""
    return ProtocPlugin("java", Path(java_source), FileFilter.extension(".java"))


def depends_on_protobuf_java(plugins: List[ProtocPlugin]) -> bool:
    return any(p.name == "java" and p.executable is None for p in plugins)


def protobuf_java_dependency(plugins: List[ProtocPlugin], version: str) -> List[str]:
    """
    Library dependencies implied by the plugin set.

    The built-in java backend needs the protobuf-java runtime; external
    plugins bring their own runtime and add nothing.
    """
    if depends_on_protobuf_java(plugins):
        return [f"com.google.protobuf:protobuf-java:{version}"]
    return []
