"""Bounded context assembly for task execution."""

from rulepilot.context.assembler import (
    SUMMARY_MARKER,
    TRUNCATION_MARKER,
    ContextAssembler,
)
from rulepilot.context.filesystem import LocalFileSystem
from rulepilot.context.paths import extract_file_paths

__all__ = [
    "ContextAssembler",
    "LocalFileSystem",
    "SUMMARY_MARKER",
    "TRUNCATION_MARKER",
    "extract_file_paths",
]
