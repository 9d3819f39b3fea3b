"""Tests for ExtensionNormalizer."""

import pytest

from sideport.core.errors import EmptyMenuError, InvalidIdError
from sideport.extensions.normalizer import ExtensionNormalizer, sanitize_id
from sideport.models.extension import BlockEntry, BlockType, SEPARATOR


class Descriptor:
    """A minimal extension descriptor."""

    def __init__(self, info):
        self.info = info
        self.calls = []

    def get_info(self):
        return self.info

    def go(self, args, util, block_info):
        self.calls.append(("go", args, block_info))
        return "went"

    def clicked(self):
        self.calls.append(("clicked",))
        return "clicked"

    def sprites(self, target_id):
        return [target_id, {"text": "Stage", "value": "_stage_"}]

    def nothing(self, target_id):
        return []


class TestNormalize:
    """Tests for descriptor normalization."""

    @pytest.fixture
    def normalizer(self, ctx):
        return ExtensionNormalizer(ctx)

    def test_regular_block(self, normalizer):
        """A single command block normalizes to a regular entry."""
        descriptor = Descriptor({"id": "myExt", "blocks": [{"opcode": "myExt_go", "text": "Go"}]})
        metadata = normalizer.normalize(descriptor)

        block = metadata.blocks[0]
        assert isinstance(block, BlockEntry)
        assert block.opcode == "myExt_go"
        assert block.text == "Go"
        assert block.block_type is BlockType.COMMAND
        assert block.is_regular
        assert block.func == "myExt_go"

    def test_invalid_id(self, normalizer):
        with pytest.raises(InvalidIdError):
            normalizer.normalize(Descriptor({"id": "my@ext"}))

    def test_missing_id(self, normalizer):
        with pytest.raises(InvalidIdError):
            normalizer.normalize(Descriptor({"name": "No id"}))

    def test_defaults(self, normalizer):
        metadata = normalizer.normalize(Descriptor({"id": "bare"}))

        assert metadata.name == "bare"
        assert metadata.blocks == []
        assert metadata.menus == {}
        assert metadata.target_types == []

    def test_extra_info_kept(self, normalizer):
        metadata = normalizer.normalize(Descriptor({"id": "colored", "color1": "#ff0000"}))
        assert metadata.canonical()["color1"] == "#ff0000"

    def test_separator_passes_through(self, normalizer):
        metadata = normalizer.normalize(Descriptor({"id": "sep", "blocks": ["---", {"opcode": "go"}]}))
        assert metadata.blocks[0] == SEPARATOR

    def test_text_defaults_to_opcode(self, normalizer):
        metadata = normalizer.normalize(Descriptor({"id": "t", "blocks": [{"opcode": "go"}]}))
        assert metadata.blocks[0].text == "go"

    def test_opcode_and_func_sanitized(self, normalizer):
        metadata = normalizer.normalize(Descriptor({
            "id": "s",
            "blocks": [{"opcode": 'a<b"c&d', "func": "go&"}],
        }))
        assert metadata.blocks[0].opcode == "a_b_c_d"
        assert metadata.blocks[0].func == "go_"

    def test_partial_failure_drops_only_bad_entries(self, normalizer):
        """A block without an opcode is dropped; the rest still load."""
        metadata = normalizer.normalize(Descriptor({
            "id": "partial",
            "blocks": [
                {"text": "no opcode"},
                {"opcode": "go"},
                {"opcode": "bad", "block_type": "not-a-kind"},
                42,
            ],
        }))
        assert metadata.opcodes == ["go"]

    def test_button_label_xml_drop_opcode(self, normalizer):
        metadata = normalizer.normalize(Descriptor({
            "id": "kinds",
            "blocks": [
                {"opcode": "x", "block_type": "label", "text": "A label"},
                {"opcode": "y", "block_type": "xml", "xml": "<sep/>"},
                {"opcode": "z", "block_type": "button", "text": "Click", "func": "clicked"},
            ],
        }))
        assert [block.opcode for block in metadata.blocks] == [None, None, None]
        assert metadata.opcodes == []

    def test_idempotent(self, normalizer):
        """Normalizing the canonical form again yields the same form."""
        descriptor = Descriptor({
            "id": "again",
            "blocks": [{"opcode": "go", "text": "Go"}, "---", {"block_type": "label", "text": "L"}],
            "menus": {"m": ["a", "b"]},
        })
        first = normalizer.normalize(descriptor).canonical()
        second = normalizer.normalize(descriptor, info=first).canonical()

        assert first == second


class TestInvokers:
    """Tests for the block and button invokers."""

    @pytest.fixture
    def normalizer(self, ctx):
        return ExtensionNormalizer(ctx)

    def test_block_call_passes_static_info(self, normalizer):
        descriptor = Descriptor({"id": "calls", "blocks": [{"opcode": "go"}]})
        block = normalizer.normalize(descriptor).blocks[0]

        assert block.call({"X": 1}) == "went"
        name, args, block_info = descriptor.calls[0]
        assert (name, args) == ("go", {"X": 1})
        assert block_info.opcode == "go"

    def test_dynamic_block_reads_mutation(self, normalizer):
        descriptor = Descriptor({"id": "dyn", "blocks": [{"opcode": "go", "is_dynamic": True}]})
        block = normalizer.normalize(descriptor).blocks[0]

        block.call({"mutation": {"block_info": {"text": "live"}}})
        block.call({})

        assert descriptor.calls[0][2] == {"text": "live"}
        assert descriptor.calls[1][2] is None

    def test_method_resolved_at_call_time(self, normalizer):
        """The descriptor's method is looked up on every call."""
        descriptor = Descriptor({"id": "late", "blocks": [{"opcode": "later"}]})
        block = normalizer.normalize(descriptor).blocks[0]

        descriptor.later = lambda args, util, block_info: "added later"
        assert block.call({}) == "added later"

    def test_event_block_ignores_func(self, normalizer):
        metadata = normalizer.normalize(Descriptor({
            "id": "ev",
            "blocks": [{"opcode": "whenever", "block_type": "event", "func": "go"}],
        }))
        assert metadata.blocks[0].call is None

    def test_button_invoker(self, normalizer):
        descriptor = Descriptor({
            "id": "btn",
            "blocks": [{"block_type": "button", "text": "Click", "func": "clicked"}],
        })
        block = normalizer.normalize(descriptor).blocks[0]

        assert block.call() == "clicked"

    def test_predefined_button_has_no_invoker(self, normalizer):
        metadata = normalizer.normalize(Descriptor({
            "id": "btn",
            "blocks": [{"block_type": "button", "text": "Make a list", "func": "MAKE_A_LIST"}],
        }))
        assert metadata.blocks[0].call is None
        assert metadata.blocks[0].func == "MAKE_A_LIST"


class TestMenus:
    """Tests for menu normalization."""

    @pytest.fixture
    def normalizer(self, ctx):
        return ExtensionNormalizer(ctx)

    def test_short_form_promoted(self, normalizer):
        metadata = normalizer.normalize(Descriptor({"id": "menus", "menus": {"colors": ["red", "green"]}}))

        menu = metadata.menus["colors"]
        assert menu.items == ["red", "green"]
        assert menu.get_items() == [("red", "red"), ("green", "green")]

    def test_dynamic_menu_uses_editing_target(self, normalizer, engine):
        metadata = normalizer.normalize(Descriptor({"id": "menus", "menus": {"who": {"items": "sprites"}}}))

        items = metadata.menus["who"].get_items()

        assert items == [("sprite1", "sprite1"), ("Stage", "_stage_")]
        assert engine.runtime.message_contexts == [engine.runtime.editing_target]

    def test_dynamic_menu_falls_back_to_stage(self, normalizer, engine):
        engine.runtime.editing_target = None
        metadata = normalizer.normalize(Descriptor({"id": "menus", "menus": {"who": "sprites"}}))

        assert metadata.menus["who"].get_items()[0] == ("stage", "stage")

    def test_empty_dynamic_menu(self, normalizer):
        metadata = normalizer.normalize(Descriptor({"id": "menus", "menus": {"none": {"items": "nothing"}}}))

        with pytest.raises(EmptyMenuError):
            metadata.menus["none"].get_items()

    def test_bad_menu_dropped(self, normalizer):
        metadata = normalizer.normalize(Descriptor({
            "id": "menus",
            "menus": {"good": ["a"], "bad": {"items": 5}},
        }))
        assert list(metadata.menus) == ["good"]

    def test_message_descriptors_formatted(self, normalizer):
        descriptor = Descriptor({"id": "menus", "menus": {"m": "labels"}})
        descriptor.labels = lambda target_id: [{"text": {"id": "x", "default": "Ex"}, "value": "x"}]

        metadata = normalizer.normalize(descriptor)
        assert metadata.menus["m"].get_items() == [("Ex", "x")]


def test_sanitize_id():
    assert sanitize_id("plain") == "plain"
    assert sanitize_id('<<"&&') == "_____"
