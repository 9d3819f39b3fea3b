"""Project data codec."""

from .codec import (
    PROCEDURE_CALL,
    SIDELOAD_MARKER,
    URLS_FIELD,
    ProjectCodec,
    extension_id_for_opcode,
)

__all__ = [
    "PROCEDURE_CALL",
    "SIDELOAD_MARKER",
    "URLS_FIELD",
    "ProjectCodec",
    "extension_id_for_opcode",
]
