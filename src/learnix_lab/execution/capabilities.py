from __future__ import annotations

from dataclasses import dataclass

CLIENT_LANGUAGE = "react"


@dataclass(frozen=True, slots=True)
class LanguageCapabilities:
    """Capability flags of the execution path serving a language.

    Example:
        ```python
        caps = LanguageCapabilities(runs_in_page=True, supports_stdin=False, supports_components=True)
        ```
    """

    runs_in_page: bool
    supports_stdin: bool
    supports_components: bool


def capabilities_for_language(language: str) -> LanguageCapabilities:
    """Return capability flags for a language tag.

    Only the literal tag `react` runs in the page; every other tag is
    delegated to the remote service, which receives stdin.

    Example:
        ```python
        caps = capabilities_for_language("python")
        ```
    """
    if language == CLIENT_LANGUAGE:
        return LanguageCapabilities(runs_in_page=True, supports_stdin=False, supports_components=True)
    return LanguageCapabilities(runs_in_page=False, supports_stdin=True, supports_components=False)
