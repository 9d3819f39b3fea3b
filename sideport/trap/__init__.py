"""Trap package - capturing host handles."""

from .race import AcquisitionRace, CaptureState, Strategy, first_success
from .engine import (
    BindingInterceptor,
    ConstructionTrap,
    StateTreeProbe,
    looks_like_engine,
    looks_like_store,
)
from .editor import EditorTrap, looks_like_editor

__all__ = [
    "AcquisitionRace",
    "CaptureState",
    "Strategy",
    "first_success",
    "BindingInterceptor",
    "ConstructionTrap",
    "StateTreeProbe",
    "looks_like_engine",
    "looks_like_store",
    "EditorTrap",
    "looks_like_editor",
]
