"""Script execution for sideloaded extensions."""

from .sandbox import Sandbox, SandboxError, ScriptContext, SecurityViolation

__all__ = ["Sandbox", "SandboxError", "ScriptContext", "SecurityViolation"]
