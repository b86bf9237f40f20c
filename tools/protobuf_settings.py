#!/usr/bin/env python3
"""
Settings for protobuf code generation.

Settings are read from a YAML file (optionally nested under a top-level
``protobuf`` key) and resolved once, in a fixed order, so that later
defaults can build on earlier values:

    base_directory -> source_root, target -> source_managed, cache_directory
    -> source_directory, java_source, external_include_path
    -> plugins -> include_paths

Every relative path resolves against ``base_directory``.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from protobuf_plugins import (
    PluginConfigError,
    ProtocPlugin,
    default_java_plugin,
    depends_on_protobuf_java,
    protobuf_java_dependency,
)

logger = logging.getLogger(__name__)

DEFAULT_PROTOC = "protoc"
DEFAULT_VERSION = "2.4.1"

KNOWN_KEYS = {
    "base_directory",
    "source_root",
    "target",
    "source_managed",
    "cache_directory",
    "protoc",
    "version",
    "source_directory",
    "java_source",
    "external_include_path",
    "plugins",
    "include_paths",
    "dependencies",
    "logging",
}


class ConfigurationError(Exception):
    """Settings could not be loaded or are invalid."""
    pass


@dataclass
class ProtobufSettings:
    """Resolved protobuf generation settings."""
    base_directory: Path
    source_directory: Path
    java_source: Path
    external_include_path: Path
    cache_directory: Path
    plugins: List[ProtocPlugin]
    include_paths: List[Path]
    protoc: str = DEFAULT_PROTOC
    version: str = DEFAULT_VERSION
    dependencies: List[Path] = field(default_factory=list)
    log_config: Dict[str, Any] = field(default_factory=lambda: {"level": "INFO", "format": "text"})

    @property
    def depend_on_protobuf_java(self) -> bool:
        """Whether the built-in java target is active."""
        return depends_on_protobuf_java(self.plugins)

    def library_dependencies(self) -> List[str]:
        return protobuf_java_dependency(self.plugins, self.version)

    def managed_source_directories(self) -> List[Path]:
        return [p.output_directory for p in self.plugins]

    def clean_files(self) -> List[Path]:
        return [p.output_directory for p in self.plugins]

    @classmethod
    def resolve(cls,
                data: Optional[Dict[str, Any]] = None,
                base_directory: Union[str, Path, None] = None) -> "ProtobufSettings":
        """
        Resolve raw settings into a settings object.

        Args:
            data: Raw settings mapping; missing keys take their defaults
            base_directory: Directory that ``data["base_directory"]`` and all
            other relative paths resolve against; defaults to the cwd

        Returns:
            Fully resolved settings

        Raises:
            ConfigurationError: If a key is unknown or a value is malformed
        """
        data = dict(data or {})
        unknown = set(data) - KNOWN_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown protobuf settings: {sorted(unknown)}")

        base = Path(base_directory or Path.cwd()) / (data.get("base_directory") or "")
        base = base.absolute()

        def path(key: str, default: Union[str, Path]) -> Path:
            value = data.get(key)
            return base / (value if value is not None else default)

        source_root = path("source_root", "src/main")
        target = path("target", "target")
        source_managed = path("source_managed", target / "src_managed" / "main")
        cache_directory = path("cache_directory", target / "cache")

        source_directory = path("source_directory", source_root / "protobuf")
        java_source = path("java_source", source_managed / "compiled_protobuf")
        external_include_path = path("external_include_path", target / "protobuf_external")

        raw_plugins = data.get("plugins")
        if raw_plugins is None:
            plugins = [default_java_plugin(java_source)]
        elif isinstance(raw_plugins, list):
            try:
                plugins = [ProtocPlugin.from_dict(p, base) for p in raw_plugins]
            except PluginConfigError as e:
                raise ConfigurationError(f"Invalid plugin configuration: {e}") from e
        else:
            raise ConfigurationError("'plugins' must be a list")

        raw_includes = data.get("include_paths")
        if raw_includes is None:
            include_paths = [source_directory, external_include_path]
        elif isinstance(raw_includes, list):
            include_paths = [base / p for p in raw_includes]
        else:
            raise ConfigurationError("'include_paths' must be a list")

        raw_dependencies = data.get("dependencies") or []
        if not isinstance(raw_dependencies, list):
            raise ConfigurationError("'dependencies' must be a list")

        raw_logging = data.get("logging") or {}
        if not isinstance(raw_logging, dict):
            raise ConfigurationError("'logging' must be a mapping")
        log_config = {"level": "INFO", "format": "text"}
        log_config.update(raw_logging)

        return cls(
            base_directory=base,
            source_directory=source_directory,
            java_source=java_source,
            external_include_path=external_include_path,
            cache_directory=cache_directory,
            plugins=plugins,
            include_paths=include_paths,
            protoc=str(data.get("protoc") or DEFAULT_PROTOC),
            version=str(data.get("version") or DEFAULT_VERSION),
            dependencies=[base / d for d in raw_dependencies],
            log_config=log_config,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation suitable for YAML output."""
        return {
            "base_directory": str(self.base_directory),
            "protoc": self.protoc,
            "version": self.version,
            "source_directory": str(self.source_directory),
            "java_source": str(self.java_source),
            "external_include_path": str(self.external_include_path),
            "cache_directory": str(self.cache_directory),
            "plugins": [p.to_dict() for p in self.plugins],
            "include_paths": [str(p) for p in self.include_paths],
            "dependencies": [str(d) for d in self.dependencies],
            "depend_on_protobuf_java": self.depend_on_protobuf_java,
            "library_dependencies": self.library_dependencies(),
            "logging": dict(self.log_config),
        }


def load_settings(config_path: Union[str, Path, None] = None,
                  base_directory: Union[str, Path, None] = None,
                  **overrides: Any) -> ProtobufSettings:
    """
    Load settings from a YAML file.

    Args:
        config_path: YAML file to read; defaults are used when None
        base_directory: Base directory; defaults to the file's directory
        **overrides: Raw settings that take precedence over the file

    Returns:
        Resolved settings

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    data: Dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path) as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration must be a mapping: {config_path}")
        if "protobuf" in loaded:
            loaded = loaded["protobuf"] or {}
            if not isinstance(loaded, dict):
                raise ConfigurationError("'protobuf' section must be a mapping")

        data.update(loaded)
        if base_directory is None:
            base_directory = config_path.absolute().parent
        logger.debug("Loaded protobuf settings from %s", config_path)

    data.update({k: v for k, v in overrides.items() if v is not None})
    return ProtobufSettings.resolve(data, base_directory)
