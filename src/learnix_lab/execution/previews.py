from __future__ import annotations

import html
import json
import logging
import uuid
from typing import Sequence

from .types import LibraryDescriptor

logger = logging.getLogger(__name__)

REACT_UMD_URL = "https://unpkg.com/react@18/umd/react.development.js"
REACT_DOM_UMD_URL = "https://unpkg.com/react-dom@18/umd/react-dom.development.js"
PREVIEW_URL_PREFIX = "blob:learnix/"
PREVIEW_STDOUT = "[React Preview] Component rendered in preview tab"
# Attribute for the hosting iframe: scripts may run, same-origin access is denied.
PREVIEW_SANDBOX_ATTRIBUTE = "allow-scripts"

_PREVIEW_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <style>
      body {{ margin: 0; padding: 16px; font-family: system-ui, sans-serif; }}
      * {{ box-sizing: border-box; }}
    </style>
    <script src="{react_url}"></script>
    <script src="{react_dom_url}"></script>
    <script src="{transpiler_url}"></script>
{library_scripts}
  </head>
  <body>
    <div id="root"></div>
    <script>
      function showError(message) {{
        var pre = document.createElement('pre');
        pre.style.color = 'red';
        pre.textContent = String(message);
        var root = document.getElementById('root');
        root.innerHTML = '';
        root.appendChild(pre);
      }}
      window.onerror = function (msg) {{ showError(msg); }};
      window.onload = function () {{
        try {{
          var libraries = {libraries_json};
          var source = {source_json}
            .replace(/import\\s+React[^;]*from\\s*['"]react['"];?/g, '')
            .replace(/import\\s+ReactDOM[^;]*from\\s*['"]react-dom['"];?/g, '')
            .replace(/import\\s*{{[^}}]*}}\\s*from\\s*['"]react(-dom)?['"];?/g, '');
          var code = Babel.transform(source, {{ presets: {presets_json}, filename: {filename_json} }}).code;
          var exports = {{}};
          var module = {{ exports: exports }};
          var require = function (name) {{
            if (name === 'react') {{ return React; }}
            if (name === 'react-dom' || name === 'react-dom/client') {{ return ReactDOM; }}
            if (Object.prototype.hasOwnProperty.call(libraries, name)) {{ return window[libraries[name]]; }}
            throw new Error("Module '" + name + "' not found. Supported modules are: " +
              ['react', 'react-dom'].concat(Object.keys(libraries)).join(', '));
          }};
          var hooks = ['useState', 'useEffect', 'useRef', 'useCallback', 'useMemo',
                       'useContext', 'useReducer', 'memo', 'forwardRef', 'createContext'];
          var body = 'var ' + hooks.map(function (h) {{ return h + ' = React.' + h; }}).join(', ') + ';\\n' + code +
            '\\nreturn exports.default || module.exports.default ||' +
            " (typeof App !== 'undefined' ? App : null) || (typeof Counter !== 'undefined' ? Counter : null);";
          var Component = new Function('require', 'React', 'ReactDOM', 'exports', 'module', body)(
            require, React, ReactDOM, exports, module
          );
          if (Component) {{
            ReactDOM.createRoot(document.getElementById('root')).render(React.createElement(Component));
          }} else {{
            document.getElementById('root').innerHTML =
              '<p style="color:gray;">No component to render. Export default a component or define App/Counter.</p>';
          }}
        }} catch (error) {{
          showError(error);
        }}
      }};
    </script>
  </body>
</html>
"""


def _script_literal(value: object) -> str:
    """JSON-encode a value so it is safe inside an inline <script> block.

    Example:
        ```python
        literal = _script_literal("</script>")
        ```
    """
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def build_preview_document(
    code: str,
    libraries: Sequence[LibraryDescriptor],
    *,
    allowed: Sequence[LibraryDescriptor],
    transpiler_url: str,
    presets: Sequence[str],
    filename: str,
) -> str:
    """Render a self-contained HTML page that transpiles and renders `code`.

    `libraries` are the ones detected in the source and get script tags;
    `allowed` is the full table the in-frame `require` resolves against.

    Example:
        ```python
        doc = build_preview_document(src, [], allowed=list(SUPPORTED_LIBRARIES.values()), transpiler_url=url, presets=["env", "react"], filename="main.jsx")
        ```
    """
    library_scripts = "\n".join(
        f'    <script src="{html.escape(lib.url, quote=True)}"></script>' for lib in libraries
    )
    return _PREVIEW_TEMPLATE.format(
        react_url=html.escape(REACT_UMD_URL, quote=True),
        react_dom_url=html.escape(REACT_DOM_UMD_URL, quote=True),
        transpiler_url=html.escape(transpiler_url, quote=True),
        library_scripts=library_scripts,
        libraries_json=_script_literal({lib.name: lib.global_name for lib in allowed}),
        source_json=_script_literal(code),
        presets_json=_script_literal(list(presets)),
        filename_json=_script_literal(filename),
    )


class PreviewRegistry:
    """Owns preview documents addressed by blob-style URLs.

    Every URL handed out must be revoked by its owner once the preview is
    replaced; `active()` exposes leaks.

    Example:
        ```python
        registry = PreviewRegistry()
        url = registry.create("<html></html>")
        registry.revoke(url)
        ```
    """

    def __init__(self) -> None:
        """Initialize an empty registry.

        Example:
            ```python
            registry = PreviewRegistry()
            ```
        """
        self._documents: dict[str, str] = {}

    def create(self, document: str) -> str:
        """Store a document and return its URL.

        Example:
            ```python
            url = registry.create(doc)
            ```
        """
        url = f"{PREVIEW_URL_PREFIX}{uuid.uuid4()}"
        self._documents[url] = document
        return url

    def get(self, url: str) -> str | None:
        """Return the document behind `url`, or None once revoked.

        Example:
            ```python
            doc = registry.get(url)
            ```
        """
        return self._documents.get(url)

    def revoke(self, url: str) -> bool:
        """Release a preview URL; returns False when it was unknown.

        Example:
            ```python
            registry.revoke(url)
            ```
        """
        existed = self._documents.pop(url, None) is not None
        if existed:
            logger.debug("Revoked preview %s", url)
        return existed

    def active(self) -> int:
        """Return how many preview URLs are still live.

        Example:
            ```python
            assert registry.active() == 1
            ```
        """
        return len(self._documents)
