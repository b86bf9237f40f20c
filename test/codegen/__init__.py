"""
Protobuf code generation test suite.

Covers dependency unpacking, protoc command construction and invocation,
the generation cache, settings resolution and the build command.

Usage:
    python -m pytest test/codegen/
    python -m pytest test/codegen/test_cache.py -v
"""

# Content written into every fake generated file
GENERATED_MARKER = "// generated by fake protoc"

SAMPLE_PROTO = """syntax = "proto3";

package test.{name};

message {title}Message {{
  int32 id = 1;
  string name = 2;
}}
"""
