from __future__ import annotations

import re
from typing import Any, Mapping

from .types import LibraryDescriptor

HOST_MODULES = ("react", "react-dom")
SUPPORTED_LIBRARIES: dict[str, LibraryDescriptor] = {
    "lodash": LibraryDescriptor(
        "lodash",
        "https://cdn.jsdelivr.net/npm/lodash@4.17.21/lodash.min.js",
        "_",
    ),
    "moment": LibraryDescriptor(
        "moment",
        "https://cdn.jsdelivr.net/npm/moment@2.30.1/moment.min.js",
        "moment",
    ),
    "axios": LibraryDescriptor(
        "axios",
        "https://cdn.jsdelivr.net/npm/axios/dist/axios.min.js",
        "axios",
    ),
    "uuid": LibraryDescriptor(
        "uuid",
        "https://cdn.jsdelivr.net/npm/uuid@8.3.2/dist/umd/uuid.min.js",
        "uuid",
    ),
}
_IMPORT_PATTERN = re.compile(
    r"""import\s+[^'"]*?\s+from\s+['"]([^'"]+)['"]|require\(\s*['"]([^'"]+)['"]\s*\)"""
)


def scan_imports(code: str, libraries: Mapping[str, LibraryDescriptor]) -> list[LibraryDescriptor]:
    """Return allow-listed libraries referenced by import or require, in source order.

    Names missing from the table are skipped; the sandbox `require` reports them
    when the code actually asks for them.

    Example:
        ```python
        found = scan_imports("import _ from 'lodash'", SUPPORTED_LIBRARIES)
        ```
    """
    seen: dict[str, LibraryDescriptor] = {}
    for match in _IMPORT_PATTERN.finditer(code):
        name = match.group(1) or match.group(2)
        if name in libraries and name not in seen:
            seen[name] = libraries[name]
    return list(seen.values())


def supported_module_names(libraries: Mapping[str, LibraryDescriptor]) -> list[str]:
    """Return every module name `require` can resolve.

    Example:
        ```python
        names = supported_module_names(SUPPORTED_LIBRARIES)
        ```
    """
    return [*HOST_MODULES, *libraries.keys()]


def unsupported_module_message(name: str, libraries: Mapping[str, LibraryDescriptor]) -> str:
    """Build the error text for a module outside the allow-list.

    Example:
        ```python
        msg = unsupported_module_message("leftpad", SUPPORTED_LIBRARIES)
        ```
    """
    supported = ", ".join(supported_module_names(libraries))
    return f"Module '{name}' not found. Supported modules are: {supported}"


def validate_library_table(raw: Any) -> dict[str, LibraryDescriptor]:
    """Validate a `[libraries]` TOML table and normalize it to descriptors.

    Example:
        ```python
        table = validate_library_table({"uuid": {"url": "https://x/uuid.js", "global": "uuid"}})
        ```
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("'libraries' must be a TOML table")
    out: dict[str, LibraryDescriptor] = {}
    for name, entry in raw.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Library '{name}' must be a table with 'url' and 'global'")
        url = entry.get("url")
        global_name = entry.get("global")
        if not isinstance(url, str) or not url.strip():
            raise ValueError(f"Library '{name}' is missing a 'url'")
        if not isinstance(global_name, str) or not global_name.isidentifier():
            raise ValueError(f"Library '{name}' needs a 'global' that is a valid identifier")
        if name in HOST_MODULES:
            raise ValueError(f"Library '{name}' is provided by the host page and cannot be overridden")
        out[str(name)] = LibraryDescriptor(str(name), url.strip(), global_name)
    return out
