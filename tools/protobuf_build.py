#!/usr/bin/env python3
"""
Protobuf code generation build steps.

Ties the dependency unpacker, the protoc compiler and the generation cache
together in the order a build needs them:

    unpack dependencies -> include paths -> cached generation

and exposes the results the surrounding build consumes (generated sources,
managed source directories, library dependencies, clean targets).
"""

import argparse
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from protobuf_cache import FileFunctionCache
from protobuf_compiler import ProtocCompiler, ProtocError, discover_schemas
from protobuf_settings import ConfigurationError, ProtobufSettings, load_settings
from protobuf_unpack import DependencyUnpacker, ExtractionError, UnpackedDependencies, unpack_dependencies

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "protobuf"


class ProtobufBuild:
    """Runs the protobuf build steps for one set of settings."""

    def __init__(self,
                 settings: ProtobufSettings,
                 compiler: Optional[ProtocCompiler] = None,
                 unpacker: Optional[DependencyUnpacker] = None):
        """
        Initialize the build.

        Args:
            settings: Resolved protobuf settings
            compiler: Compiler to use; defaults to one running ``settings.protoc``
            unpacker: Unpacker to use for dependency archives
        """
        self.settings = settings
        self.compiler = compiler or ProtocCompiler(settings.protoc)
        self.unpacker = unpacker or DependencyUnpacker()
        self.cache = FileFunctionCache(settings.cache_directory, CACHE_NAMESPACE)

    def unpack_dependencies(self) -> UnpackedDependencies:
        """Extract .proto files from the configured dependency archives."""
        return unpack_dependencies(
            self.settings.dependencies,
            self.settings.external_include_path,
            self.unpacker,
        )

    def include_paths(self) -> List[Path]:
        """
        Include paths for protoc.

        When the external include path is among them, the dependency
        archives are unpacked first so the directory is populated.
        """
        paths = list(self.settings.include_paths)
        external = self.settings.external_include_path.absolute()
        if any(Path(p).absolute() == external for p in paths):
            self.unpack_dependencies()
        return paths

    def generate(self) -> List[Path]:
        """
        Compile the protobuf sources, reusing earlier output when possible.

        Only changes to the schema files under the source directory are
        detected; edits to unpacked dependency schemas do not trigger a
        rebuild.

        Returns:
            Sorted list of generated files
        """
        settings = self.settings
        include_paths = self.include_paths()

        def compile_sources(_inputs: List[Path]) -> List[Path]:
            return self.compiler.compile(settings.source_directory, include_paths, settings.plugins)

        return self.cache.cached(discover_schemas(settings.source_directory), compile_sources)

    def managed_source_directories(self) -> List[Path]:
        return self.settings.managed_source_directories()

    def library_dependencies(self) -> List[str]:
        return self.settings.library_dependencies()

    def clean(self) -> List[Path]:
        """
        Remove generated output, unpacked dependencies and the cache record.

        Returns:
            Paths that existed and were removed
        """
        removed = []
        targets = self.settings.clean_files() + [self.settings.external_include_path, self.cache.directory]
        for path in targets:
            path = Path(path)
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            else:
                continue
            logger.info("Removed %s", path)
            removed.append(path)
        return removed


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_config: dict, verbose: bool = False) -> None:
    """Configure the root logger for command-line use."""
    level = logging.DEBUG if verbose else getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    if not root.handlers:
        handler = logging.StreamHandler()
        if log_config.get("format") == "json":
            formatter = JsonFormatter()
        else:
            formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')
        handler.setFormatter(formatter)
        root.addHandler(handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the protobuf build command."""
    parser = argparse.ArgumentParser(description="Generate sources from protobuf schemas")
    parser.add_argument("--config", "-c", help="YAML settings file (default: protobuf.yaml if present)")
    parser.add_argument("--base-dir", help="Project base directory")
    parser.add_argument("--protoc", help="Path or name of the protoc executable")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("generate", help="Compile protobuf sources")
    subparsers.add_parser("unpack", help="Extract .proto files from dependency archives")
    subparsers.add_parser("clean", help="Remove generated sources and caches")
    subparsers.add_parser("show", help="Print the resolved settings")

    args = parser.parse_args(argv)

    config_path = args.config
    if config_path is None and Path("protobuf.yaml").exists():
        config_path = "protobuf.yaml"

    try:
        settings = load_settings(config_path, base_directory=args.base_dir, protoc=args.protoc)
        setup_logging(settings.log_config, args.verbose)

        build = ProtobufBuild(settings)
        if args.command == "generate":
            for path in build.generate():
                print(path)
        elif args.command == "unpack":
            for path in build.unpack_dependencies().files:
                print(path)
        elif args.command == "clean":
            for path in build.clean():
                print(path)
        elif args.command == "show":
            print(yaml.safe_dump(settings.to_dict(), sort_keys=False), end="")

    except (ConfigurationError, ExtractionError, ProtocError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
