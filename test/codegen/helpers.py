"""
Helpers for protobuf code generation tests.

Provides a fake protoc executable, archive builders and proto file
generators so tests can exercise the build steps without a real compiler.
"""

import io
import json
import os
import sys
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List

from . import GENERATED_MARKER, SAMPLE_PROTO


FAKE_PROTOC = '''#!{python}
import json
import sys
from pathlib import Path

args = sys.argv[1:]
with open({calls_file!r}, "a") as f:
    f.write(json.dumps(args) + "\\n")

schemas = [a for a in args if not a.startswith("-")]
for arg in args:
    if arg.startswith("--") and "_out=" in arg:
        flag, out = arg.split("=", 1)
        language = flag[2:-len("_out")]
        suffix = ".java" if language == "java" else "." + language
        for schema in schemas:
            Path(out, Path(schema).stem + suffix).write_text({marker!r})

print("fake protoc compiled %d files" % len(schemas))
sys.stderr.flush()
sys.stderr.buffer.write({raw_stderr!r})
sys.stderr.buffer.flush()
if {exit_code}:
    print("fake protoc failure", file=sys.stderr)
sys.exit({exit_code})
'''


class FakeProtoc:
    """A protoc stand-in that records its invocations."""

    def __init__(self, directory: Path, exit_code: int = 0, raw_stderr: bytes = b""):
        directory.mkdir(parents=True, exist_ok=True)
        self.path = directory / "protoc"
        self.calls_file = directory / "protoc.calls"
        self.path.write_text(FAKE_PROTOC.format(
            python=sys.executable,
            calls_file=str(self.calls_file),
            marker=GENERATED_MARKER,
            exit_code=exit_code,
            raw_stderr=raw_stderr,
        ))
        self.path.chmod(0o755)

    @property
    def calls(self) -> List[List[str]]:
        """Argument lists of every invocation so far."""
        if not self.calls_file.exists():
            return []
        with open(self.calls_file) as f:
            return [json.loads(line) for line in f if line.strip()]

    @property
    def call_count(self) -> int:
        return len(self.calls)


def create_proto(directory: Path, relative: str) -> Path:
    """Write a small proto file at ``directory / relative``."""
    path = directory / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    name = path.stem
    path.write_text(SAMPLE_PROTO.format(name=name, title=name.title().replace("_", "")))
    return path


def create_zip(path: Path, entries: Dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return path


def create_tar(path: Path, entries: Dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, content in entries.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return path


def bump_mtime(path: Path, seconds: int = 5) -> None:
    """Move a file's modification time forward."""
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + seconds * 1_000_000_000))
