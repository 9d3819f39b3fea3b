"""Extension data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

SEPARATOR = "---"

# Host-builtin button actions; these never get an extension invoker.
PREDEFINED_CALLBACK_KEYS = (
    "MAKE_A_LIST",
    "MAKE_A_PROCEDURE",
    "MAKE_A_VARIABLE",
    "CREATE_LIST",
    "CREATE_PROCEDURE",
    "CREATE_VARIABLE",
)


class ArgumentType(str, Enum):
    """Argument shapes a block input may take."""
    ANGLE = "angle"
    BOOLEAN = "Boolean"
    COLOR = "color"
    NUMBER = "number"
    STRING = "string"
    MATRIX = "matrix"
    NOTE = "note"
    IMAGE = "image"
    COSTUME = "costume"
    SOUND = "sound"


class BlockType(str, Enum):
    """Kinds of block entries."""
    BOOLEAN = "Boolean"
    BUTTON = "button"
    LABEL = "label"
    COMMAND = "command"
    CONDITIONAL = "conditional"
    EVENT = "event"
    HAT = "hat"
    LOOP = "loop"
    REPORTER = "reporter"
    XML = "xml"


class TargetType(str, Enum):
    SPRITE = "sprite"
    STAGE = "stage"


class ReporterScope(str, Enum):
    GLOBAL = "global"
    TARGET = "target"


# Kinds that are not executable blocks and never carry an opcode.
NON_OPCODE_TYPES = (BlockType.BUTTON, BlockType.LABEL, BlockType.XML)


class BlockEntry(BaseModel):
    """A normalized block entry.

    ``call`` is the bound invoker installed during normalization. It is
    excluded from dumps so the canonical form stays plain data.
    """
    model_config = ConfigDict(extra="allow")

    opcode: Optional[str] = None
    text: Any = None
    block_type: BlockType = BlockType.COMMAND
    terminal: bool = False
    block_all_threads: bool = False
    arguments: dict[str, Any] = Field(default_factory=dict)
    func: Optional[str] = None
    is_dynamic: bool = False
    xml: Optional[str] = None
    call: Optional[Callable[..., Any]] = Field(default=None, exclude=True)

    @property
    def is_regular(self) -> bool:
        return self.block_type not in NON_OPCODE_TYPES


class MenuEntry(BaseModel):
    """A menu: static items or the name of a descriptor method."""
    model_config = ConfigDict(extra="allow")

    items: Union[list[Any], str]
    accept_reporters: bool = False
    resolve: Optional[Callable[[], list[Any]]] = Field(default=None, exclude=True)

    @property
    def is_dynamic(self) -> bool:
        return isinstance(self.items, str)

    def get_items(self) -> list[Any]:
        """Items as (display, value) pairs, resolving dynamic menus now."""
        if self.resolve is not None:
            return self.resolve()
        return [menu_item_pair(item) for item in self.items]


def menu_item_pair(item: Any) -> Any:
    if isinstance(item, dict) and "value" in item:
        return (item.get("text", item["value"]), item["value"])
    if isinstance(item, str):
        return (item, item)
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return tuple(item)
    return item


class ExtensionMetadata(BaseModel):
    """Canonical extension info handed to the engine."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Extension id, [a-z0-9]+")
    name: Any = Field(..., description="Display name, defaults to the id")
    blocks: list[Union[Literal["---"], BlockEntry]] = Field(default_factory=list)
    menus: dict[str, MenuEntry] = Field(default_factory=dict)
    target_types: list[str] = Field(default_factory=list)

    @property
    def opcodes(self) -> list[str]:
        return [
            block.opcode for block in self.blocks
            if isinstance(block, BlockEntry) and block.opcode
        ]

    def find_block(self, opcode: str) -> Optional[BlockEntry]:
        for block in self.blocks:
            if isinstance(block, BlockEntry) and block.opcode == opcode:
                return block
        return None

    def canonical(self) -> dict[str, Any]:
        """Plain-data form; normalizing it again yields the same form."""
        return self.model_dump()


class LoadedExtensionRecord(BaseModel):
    """A sideloaded extension, keyed by the URL it was loaded from."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: str
    descriptor: Any = Field(..., description="The object the script registered")
    metadata: ExtensionMetadata
    loaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
