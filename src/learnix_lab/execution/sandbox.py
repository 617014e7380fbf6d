from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping

from .types import LibraryDescriptor

if TYPE_CHECKING:
    from .page import BrowserPage

# Installed once into every page. `run` receives exactly four bindings:
# require, React, exports and console. `abort` restores the console after
# a run was terminated by the evaluation timeout.
HARNESS_SOURCE = r"""
(function (root) {
  if (typeof root.window === 'undefined') { root.window = root; }
  if (typeof root.self === 'undefined') { root.self = root; }
  if (typeof root.console === 'undefined') {
    var noop = function () {};
    root.console = { log: noop, info: noop, warn: noop, error: noop, debug: noop };
  }

  var previews = {};
  var nextId = 1;
  var active = null;
  var hasOwn = Object.prototype.hasOwnProperty;

  function format(value) {
    if (typeof value === 'string') { return value; }
    if (value instanceof Error) { return String(value); }
    if (typeof value === 'function') { return '[Function ' + (value.name || 'anonymous') + ']'; }
    if (value !== null && typeof value === 'object') {
      try { return JSON.stringify(value); } catch (e) { return String(value); }
    }
    return String(value);
  }

  root.__learnix = {
    load: function (source) {
      try {
        (0, eval)(source);
        return '';
      } catch (e) {
        return String(e) || 'Script evaluation failed';
      }
    },
    hasGlobal: function (name) {
      return typeof root[name] !== 'undefined';
    },
    transpile: function (source, globalName, presets, filename) {
      try {
        var result = root[globalName].transform(source, {
          presets: presets,
          filename: filename,
          sourceType: 'module'
        });
        return JSON.stringify({ ok: true, code: result.code });
      } catch (e) {
        return JSON.stringify({ ok: false, error: String(e) });
      }
    },
    run: function (code, libraries) {
      var chunks = [];
      function append(prefix, args) {
        chunks.push(prefix + Array.prototype.map.call(args, format).join(' ') + '\n');
      }
      var sandboxConsole = {
        log: function () { append('', arguments); },
        info: function () { append('', arguments); },
        warn: function () { append('', arguments); },
        debug: function () { append('', arguments); },
        error: function () { append('[ERROR] ', arguments); }
      };
      var require = function (name) {
        if (name === 'react') { return root.React; }
        if (name === 'react-dom' || name === 'react-dom/client') { return root.ReactDOM; }
        if (hasOwn.call(libraries, name)) { return root[libraries[name]]; }
        var supported = ['react', 'react-dom'].concat(Object.keys(libraries));
        throw new Error("Module '" + name + "' not found. Supported modules are: " + supported.join(', '));
      };
      var exports = {};
      var hostConsole = root.console;
      active = { chunks: chunks, hostConsole: hostConsole };
      root.console = sandboxConsole;
      try {
        new Function('require', 'React', 'exports', 'console', code)(
          require, root.React, exports, sandboxConsole
        );
        var handle = null;
        if (exports.default) {
          handle = 'preview-' + nextId++;
          previews[handle] = exports.default;
        }
        return JSON.stringify({ stdout: chunks.join(''), stderr: '', handle: handle });
      } catch (e) {
        return JSON.stringify({ stdout: chunks.join(''), stderr: String(e), handle: null });
      } finally {
        root.console = hostConsole;
        active = null;
      }
    },
    abort: function () {
      // a terminated run skips its finally block
      if (active === null) { return JSON.stringify({ stdout: '' }); }
      var stdout = active.chunks.join('');
      root.console = active.hostConsole;
      active = null;
      return JSON.stringify({ stdout: stdout });
    },
    release: function (handle) {
      var existed = hasOwn.call(previews, handle);
      delete previews[handle];
      return existed;
    },
    previewCount: function () {
      return Object.keys(previews).length;
    }
  };
})(typeof globalThis !== 'undefined' ? globalThis : this);
"""


class TranspileError(RuntimeError):
    """Raised when the transpiler rejects user source."""


class EvaluationTimeoutError(RuntimeError):
    """Raised when page evaluation runs past its time limit."""


@dataclass(slots=True)
class SandboxOutcome:
    """Raw outcome of one sandboxed invocation.

    Example:
        ```python
        out = SandboxOutcome(stdout="a\\n", stderr="", handle_id=None)
        ```
    """

    stdout: str
    stderr: str
    handle_id: str | None = None


def transpile(
    page: BrowserPage,
    source: str,
    *,
    transpiler_global: str,
    presets: list[str],
    filename: str,
    timeout_seconds: float | None = None,
) -> str:
    """Transpile modern JS/JSX to plain script code with the page's transpiler.

    Example:
        ```python
        code = transpile(page, "export default () => <b/>;", transpiler_global="Babel", presets=["env", "react"], filename="main.jsx")
        ```
    """
    try:
        raw = page.call("transpile", source, transpiler_global, presets, filename, timeout_seconds=timeout_seconds)
    except EvaluationTimeoutError as exc:
        raise TranspileError(f"Transpilation timed out after {timeout_seconds}s") from exc
    parsed = json.loads(raw)
    if not parsed.get("ok"):
        raise TranspileError(str(parsed.get("error") or "Transpilation failed"))
    return str(parsed.get("code") or "")


def invoke(
    page: BrowserPage,
    code: str,
    libraries: Mapping[str, LibraryDescriptor],
    *,
    max_output_kb: int,
    timeout_seconds: float | None = None,
) -> SandboxOutcome:
    """Invoke transpiled code with the require shim and a capturing console.

    A run stopped by `timeout_seconds` keeps the output printed so far.

    Example:
        ```python
        out = invoke(page, "console.log('hi')", SUPPORTED_LIBRARIES, max_output_kb=128)
        ```
    """
    bindings = {name: lib.global_name for name, lib in libraries.items()}
    max_output_chars = max_output_kb * 1024
    try:
        parsed = json.loads(page.call("run", code, bindings, timeout_seconds=timeout_seconds))
    except EvaluationTimeoutError:
        partial = json.loads(page.call("abort"))
        return SandboxOutcome(
            stdout=str(partial.get("stdout", ""))[:max_output_chars],
            stderr=f"Execution timed out after {timeout_seconds}s",
        )
    return SandboxOutcome(
        stdout=str(parsed.get("stdout", ""))[:max_output_chars],
        stderr=str(parsed.get("stderr", ""))[:max_output_chars],
        handle_id=parsed.get("handle"),
    )
