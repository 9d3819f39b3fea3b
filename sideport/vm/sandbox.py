"""Sandbox - script execution for sideloaded extensions.

Every sideloaded script runs in its own ``ScriptContext``: a fresh global
namespace holding the injected bindings, and a stdout capture. Scripts run
with full builtins by default; with ``unrestricted=False`` they are compiled
with RestrictedPython and only see guarded builtins.
"""

import io
import operator as _operator
import sys
import traceback
from contextlib import redirect_stdout
from typing import Any, Optional

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getattr, default_guarded_getitem
from RestrictedPython.Guards import (
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
)
from RestrictedPython.PrintCollector import PrintCollector

from sideport.core.logging import get_logger

logger = get_logger(__name__)


class SandboxError(Exception):
    """Raised when compiling or running a script fails."""

    def __init__(self, message: str, traceback: Optional[str] = None):
        super().__init__(message)
        self.traceback = traceback


class SecurityViolation(SandboxError):
    """Raised when restricted code attempts a forbidden operation."""
    pass


class TeeIO:
    """Writes to a buffer and the original stream."""

    def __init__(self, original_stream):
        self.original_stream = original_stream
        self.buffer = io.StringIO()

    def write(self, s):
        self.original_stream.write(s)
        if self.buffer.closed:
            return len(s)
        return self.buffer.write(s)

    def flush(self):
        self.original_stream.flush()

    def getvalue(self):
        return self.buffer.getvalue()

    def close(self):
        self.buffer.close()

    @property
    def closed(self) -> bool:
        return self.buffer.closed


class ScriptContext:
    """Namespace and output capture of one script run."""

    def __init__(self, url: str, namespace: dict[str, Any]):
        self.url = url
        self.namespace = namespace
        self.output = TeeIO(sys.stdout)
        self.released = False

    def captured(self) -> str:
        return "" if self.output.closed else self.output.getvalue()

    def release(self) -> None:
        """Detach the namespace and close the capture; safe to call twice.

        Functions the script defined keep their own globals alive.
        """
        if self.released:
            return
        self.namespace = {}
        self.output.close()
        self.released = True


class Sandbox:
    """Compiles and runs sideloaded scripts."""

    # Modules restricted scripts may import
    WHITELISTED_MODULES = {
        "json": __import__("json"),
        "re": __import__("re"),
        "math": __import__("math"),
        "datetime": __import__("datetime"),
        "asyncio": __import__("asyncio"),
    }

    # Builtins allowed in restricted mode
    SAFE_BUILTINS = {
        **safe_builtins,
        "__build_class__": __build_class__,
        "len": len,
        "range": range,
        "enumerate": enumerate,
        "zip": zip,
        "map": map,
        "filter": filter,
        "sorted": sorted,
        "reversed": reversed,
        "list": list,
        "dict": dict,
        "set": set,
        "tuple": tuple,
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
        "abs": abs,
        "all": all,
        "any": any,
        "max": max,
        "min": min,
        "sum": sum,
        "round": round,
        "isinstance": isinstance,
        "hasattr": hasattr,
        "getattr": getattr,
        "super": super,
        "staticmethod": staticmethod,
        "classmethod": classmethod,
        "property": property,
    }

    _OPERATORS = {
        "+=": _operator.iadd,
        "-=": _operator.isub,
        "*=": _operator.imul,
        "/=": _operator.itruediv,
        "//=": _operator.ifloordiv,
        "%=": _operator.imod,
        "**=": _operator.ipow,
        "&=": _operator.iand,
        "|=": _operator.ior,
        "^=": _operator.ixor,
        "<<=": _operator.ilshift,
        ">>=": _operator.irshift,
    }

    @classmethod
    def _safe_import(cls, name, *args, **kwargs):
        """Import function that only allows whitelisted modules."""
        if name in cls.WHITELISTED_MODULES:
            return cls.WHITELISTED_MODULES[name]
        raise ImportError(f"Module '{name}' is not allowed in the sandbox")

    @classmethod
    def _inplacevar(cls, op, x, y):
        if op not in cls._OPERATORS:
            raise SecurityViolation(f"Operation '{op}' is not allowed")
        return cls._OPERATORS[op](x, y)

    def __init__(self, unrestricted: bool = True):
        self._unrestricted = unrestricted

    @property
    def unrestricted(self) -> bool:
        return self._unrestricted

    def compile(self, source_code: str, filename: str = "<extension>") -> Any:
        """Compile source code.

        Raises:
            SandboxError: syntax errors, or code RestrictedPython rejects.
        """
        if self._unrestricted:
            try:
                return compile(source_code, filename, "exec")
            except SyntaxError as e:
                raise SandboxError(f"Syntax error at line {e.lineno}: {e.msg}") from e

        try:
            result = compile_restricted(source_code, filename=filename, mode="exec")
        except SyntaxError as e:
            raise SandboxError(f"Syntax error at line {e.lineno}: {e.msg}") from e

        if hasattr(result, "errors") and result.errors:
            errors = "\n".join(result.errors)
            raise SandboxError(f"Compilation errors:\n{errors}")
        if hasattr(result, "code"):
            return result.code
        return result

    def create_restricted_globals(self, bindings: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        restricted_globals = {
            "__builtins__": {**self.SAFE_BUILTINS, "__import__": self._safe_import},
            "__name__": "__sideload__",
            "__metaclass__": type,
            "_getattr_": default_guarded_getattr,
            "_getitem_": default_guarded_getitem,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_getiter_": iter,
            "_write_": lambda x: x,
            "_inplacevar_": self._inplacevar,
            "_apply_": lambda f, *a, **kw: f(*a, **kw),
            "_print_": PrintCollector,
        }
        if bindings:
            restricted_globals.update(bindings)
        return restricted_globals

    def create_context(self, url: str, bindings: Optional[dict[str, Any]] = None) -> ScriptContext:
        """A fresh namespace with ``bindings`` injected."""
        if self._unrestricted:
            namespace = {"__builtins__": __builtins__, "__name__": "__sideload__"}
            if bindings:
                namespace.update(bindings)
        else:
            namespace = self.create_restricted_globals(bindings)
        return ScriptContext(url, namespace)

    def run(self, context: ScriptContext, source_code: str) -> str:
        """Execute ``source_code`` in ``context`` and return its captured output.

        Raises:
            SandboxError: compilation failed or the script raised.
        """
        if context.released:
            raise SandboxError(f"Context for {context.url} was already released")

        code = self.compile(source_code, filename=context.url)
        logger.debug(f"Running script {context.url}", component="sandbox", url=context.url)
        with redirect_stdout(context.output):
            try:
                exec(code, context.namespace)
            except SandboxError:
                raise
            except Exception as e:
                raise SandboxError(
                    f"Execution error: {type(e).__name__}: {e}",
                    traceback=traceback.format_exc()
                ) from e
        return context.captured()
