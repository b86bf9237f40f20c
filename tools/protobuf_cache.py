#!/usr/bin/env python3
"""
File-function cache for protobuf generation.

Remembers the modification times of the inputs of an expensive file
transformation together with the files it produced, and skips the
transformation while the inputs are unchanged and the outputs still exist.

Only one build may use a cache directory at a time.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

RECORD_FILE = "record.json"


@dataclass
class CacheRecord:
    """Input fingerprint and the outputs it produced."""
    inputs: Dict[str, int] = field(default_factory=dict)
    outputs: List[str] = field(default_factory=list)

    def outputs_exist(self) -> bool:
        return all(Path(o).exists() for o in self.outputs)


def fingerprint(files: Iterable[Union[str, Path]]) -> Dict[str, int]:
    """
    Map each file to its modification time in nanoseconds.

    Missing files are recorded with ``-1`` so that their reappearance
    counts as a change.
    """
    result = {}
    for f in files:
        path = Path(f).absolute()
        try:
            result[str(path)] = path.stat().st_mtime_ns
        except FileNotFoundError:
            result[str(path)] = -1
    return result


class FileFunctionCache:
    """Persistent input/output record under ``<cache_directory>/<namespace>``."""

    def __init__(self, cache_directory: Union[str, Path], namespace: str = "protobuf"):
        self.directory = Path(cache_directory) / namespace
        self.record_path = self.directory / RECORD_FILE

    def load(self) -> Optional[CacheRecord]:
        """Read the stored record, or None if there is no usable record."""
        if not self.record_path.exists():
            return None
        try:
            with open(self.record_path, "r") as f:
                data = json.load(f)
            return CacheRecord(inputs=dict(data["inputs"]), outputs=list(data["outputs"]))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable cache record %s: %s", self.record_path, e)
            return None

    def save(self, record: CacheRecord) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".record-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(asdict(record), f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.record_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def invalidate(self) -> None:
        self.record_path.unlink(missing_ok=True)

    def cached(self,
               inputs: Iterable[Union[str, Path]],
               action: Callable[[List[Path]], Iterable[Union[str, Path]]]) -> List[Path]:
        """
        Run ``action`` unless the recorded result is still valid.

        Args:
            inputs: Files whose modification times form the cache key
            action: Called with the inputs when the cache is stale; returns
                the produced files

        Returns:
            Sorted produced files, from the record or from ``action``
        """
        inputs = sorted(Path(i).absolute() for i in inputs)
        current = fingerprint(inputs)

        record = self.load()
        if record is not None and record.inputs == current and record.outputs_exist():
            logger.debug("Inputs unchanged, reusing %d cached outputs", len(record.outputs))
            return [Path(o) for o in record.outputs]

        try:
            outputs = sorted(Path(o).absolute() for o in action(inputs))
        except BaseException:
            self.invalidate()
            raise

        self.save(CacheRecord(inputs=current, outputs=[str(o) for o in outputs]))
        return outputs
