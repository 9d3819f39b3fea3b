"""Patch installation on live host objects."""

from .applicator import PatchApplicator, PatchRegistration, applicator, apply_to

__all__ = ["PatchApplicator", "PatchRegistration", "applicator", "apply_to"]
