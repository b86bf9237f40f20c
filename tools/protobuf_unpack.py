#!/usr/bin/env python3
"""
Unpack .proto files bundled inside library archives.

Libraries frequently ship their schema files inside the jar (or tarball)
that carries the compiled code. Extracting those entries into a scratch
directory lets protoc resolve imports against them without the consuming
project vendoring anything.
"""

import logging
import shutil
import tarfile
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Union

logger = logging.getLogger(__name__)

PROTO_SUFFIX = ".proto"


class ExtractionError(Exception):
    """An archive could not be read or contains unsafe entries."""

    def __init__(self, archive: Union[str, Path], message: str):
        self.archive = Path(archive)
        super().__init__(f"Failed to extract {PROTO_SUFFIX} files from {self.archive}: {message}")


@dataclass
class UnpackedDependencies:
    """Extraction directory and the files one unpack run wrote into it."""
    directory: Path
    files: List[Path] = field(default_factory=list)


def _safe_member_path(archive: Path, name: str, target_directory: Path) -> Path:
    member = PurePosixPath(name.replace("\\", "/"))
    if member.is_absolute() or ".." in member.parts:
        raise ExtractionError(archive, f"entry escapes the target directory: {name}")
    return target_directory.joinpath(*member.parts)


class DependencyUnpacker:
    """Extracts the .proto entries of zip and tar archives."""

    def unpack(self, archives: Iterable[Union[str, Path]], target_directory: Union[str, Path]) -> List[Path]:
        """
        Extract every .proto entry of the given archives.

        Args:
            archives: Resolved dependency archives, processed in order
            target_directory: Directory to extract into (created if absent)

        Returns:
            Extracted files in extraction order; later archives overwrite
            files of earlier ones with the same relative path

        Raises:
            ExtractionError: If an archive is missing, corrupt or unsafe
        """
        target = Path(target_directory).absolute()
        target.mkdir(parents=True, exist_ok=True)

        extracted: List[Path] = []
        for archive in archives:
            files = self.unpack_archive(Path(archive), target)
            if files:
                logger.debug("Extracted %s", ",".join(str(f) for f in files))
            else:
                logger.debug("No %s files found in %s", PROTO_SUFFIX, archive)
            extracted.extend(files)
        return extracted

    def unpack_archive(self, archive: Path, target: Path) -> List[Path]:
        """Extract the .proto entries of a single archive."""
        try:
            if zipfile.is_zipfile(archive):
                return self._unpack_zip(archive, target)
            if tarfile.is_tarfile(archive):
                return self._unpack_tar(archive, target)
        except ExtractionError:
            raise
        except (OSError, EOFError, zlib.error, zipfile.BadZipFile, tarfile.TarError) as e:
            raise ExtractionError(archive, str(e)) from e

        raise ExtractionError(archive, "not a zip or tar archive")

    def _unpack_zip(self, archive: Path, target: Path) -> List[Path]:
        files = []
        with zipfile.ZipFile(archive, "r") as zip_ref:
            for info in zip_ref.infolist():
                if info.is_dir() or not info.filename.endswith(PROTO_SUFFIX):
                    continue
                destination = _safe_member_path(archive, info.filename, target)
                destination.parent.mkdir(parents=True, exist_ok=True)
                with zip_ref.open(info) as src, open(destination, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                files.append(destination)
        return files

    def _unpack_tar(self, archive: Path, target: Path) -> List[Path]:
        files = []
        with tarfile.open(archive, "r:*") as tar_ref:
            for member in tar_ref.getmembers():
                if not member.isfile() or not member.name.endswith(PROTO_SUFFIX):
                    continue
                destination = _safe_member_path(archive, member.name, target)
                destination.parent.mkdir(parents=True, exist_ok=True)
                src = tar_ref.extractfile(member)
                if src is None:
                    continue
                with src, open(destination, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                files.append(destination)
        return files


def unpack_dependencies(archives: Iterable[Union[str, Path]],
                        directory: Union[str, Path],
                        unpacker: DependencyUnpacker = None) -> UnpackedDependencies:
    """Run the unpacker and pair its result with the extraction directory."""
    unpacker = unpacker or DependencyUnpacker()
    directory = Path(directory).absolute()
    files = unpacker.unpack(archives, directory)
    return UnpackedDependencies(directory, files)
