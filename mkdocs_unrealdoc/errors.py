"""Error taxonomy.

Fatal problems are exceptions. Anything a run can recover from is recorded
as a Diagnostic and reported together at the end.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Diagnostic:
    code: str
    message: str
    filename: str = ""
    line: int = 0

    def __str__(self):
        where = f"{self.filename}:{self.line}: " if self.filename else ""
        return f"{where}{self.message} [{self.code}]"


class UnrealDocError(RuntimeError):
    pass


class ScanError(UnrealDocError):
    def __init__(self, filename, offset, line, message):
        self.filename = filename
        self.offset = offset
        self.line = line
        self.message = message
        super().__init__(f"{filename or '<string>'}:{line} (offset {offset}): {message}")


class DuplicateNameError(UnrealDocError):
    def __init__(self, kind, name, first, second):
        self.kind = kind
        self.name = name
        self.first = first
        self.second = second
        super().__init__(f"duplicate {kind} name '{name}': defined in {first} and {second}")


class BookError(UnrealDocError):
    def __init__(self, path, message):
        self.path = path
        super().__init__(f"book {path}: {message}")


class ConfigError(UnrealDocError):
    def __init__(self, path, message):
        self.path = path
        super().__init__(f"config {path}: {message}")
