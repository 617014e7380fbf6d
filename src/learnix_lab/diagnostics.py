from __future__ import annotations

import re
from dataclasses import dataclass

_PYTHON_FRAME = re.compile(r'File "(?P<file>[^"]+)", line (?P<line>\d+)')
_PYTHON_EXCEPTION = re.compile(r"^(?P<message>[A-Za-z_][\w.]*(?:Error|Exception|Exit|Interrupt)\b.*)$", re.M)
_COMPILER = re.compile(r"^(?P<file>[^\s:]+\.\w+):(?P<line>\d+):(?:(?P<column>\d+):)?(?P<rest>.*)$", re.M)
_SEVERITY = re.compile(r"^(?:fatal )?error:?\s*")
_NON_ERRORS = ("warning", "note")
_RUST = re.compile(r"^error(?:\[\w+\])?:\s*(?P<message>.*)\n\s*-->\s*[^:\s]+:(?P<line>\d+):(?P<column>\d+)", re.M)
_JS_POSITION = re.compile(r"\((?P<line>\d+):(?P<column>\d+)\)")
_JS_ANONYMOUS = re.compile(r"<anonymous>:(?P<line>\d+):(?P<column>\d+)")

_PYTHON = {"python", "python3", "py"}
_JAVASCRIPT = {"javascript", "typescript", "react", "js", "ts", "jsx"}


@dataclass(frozen=True, slots=True)
class ErrorMarker:
    """Editor gutter marker for one reported error position.

    Example:
        ```python
        marker = ErrorMarker(line=3, column=None, message="NameError: name 'x' is not defined")
        ```
    """

    line: int
    column: int | None
    message: str


def _python_markers(stderr: str) -> list[ErrorMarker]:
    """Return the innermost user-code frame of a Python traceback.

    Example:
        ```python
        markers = _python_markers('File "main.py", line 2\\nNameError: x')
        ```
    """
    frames = [m for m in _PYTHON_FRAME.finditer(stderr) if not m.group("file").startswith("<frozen")]
    if not frames:
        return []
    exceptions = _PYTHON_EXCEPTION.findall(stderr)
    message = exceptions[-1].strip() if exceptions else ""
    return [ErrorMarker(line=int(frames[-1].group("line")), column=None, message=message)]


def _javascript_markers(stderr: str) -> list[ErrorMarker]:
    """Return positions from Babel `(line:col)` or V8 `<anonymous>:line:col` output.

    Example:
        ```python
        markers = _javascript_markers("SyntaxError: main.jsx: Unexpected token (2:4)")
        ```
    """
    first_line = stderr.strip().splitlines()[0] if stderr.strip() else ""
    match = _JS_POSITION.search(stderr) or _JS_ANONYMOUS.search(stderr)
    if match is None:
        return []
    return [ErrorMarker(line=int(match.group("line")), column=int(match.group("column")), message=first_line)]


def _compiler_markers(stderr: str) -> list[ErrorMarker]:
    """Return markers from gcc/clang/go/javac and rustc style diagnostics.

    Example:
        ```python
        markers = _compiler_markers("main.c:3:5: error: expected ';'")
        ```
    """
    markers: list[ErrorMarker] = []
    for m in _COMPILER.finditer(stderr):
        rest = m.group("rest").strip()
        if rest.startswith(_NON_ERRORS):
            continue
        markers.append(
            ErrorMarker(
                line=int(m.group("line")),
                column=int(m.group("column")) if m.group("column") else None,
                message=_SEVERITY.sub("", rest),
            )
        )
    markers.extend(
        ErrorMarker(line=int(m.group("line")), column=int(m.group("column")), message=m.group("message").strip())
        for m in _RUST.finditer(stderr)
    )
    return sorted(markers, key=lambda marker: (marker.line, marker.column or 0))


def extract_error_markers(stderr: str, language: str) -> list[ErrorMarker]:
    """Extract gutter markers from error output; unknown formats yield no markers.

    Example:
        ```python
        markers = extract_error_markers(result.stderr, "python")
        ```
    """
    if not stderr.strip():
        return []
    lang = language.lower()
    if lang in _PYTHON:
        return _python_markers(stderr)
    if lang in _JAVASCRIPT:
        return _javascript_markers(stderr)
    return _compiler_markers(stderr)
