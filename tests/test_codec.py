"""Tests for the project codec."""

import copy
import json

import pytest

from sideport.models.context import BridgeContext
from sideport.project.codec import (
    PROCEDURE_CALL,
    SIDELOAD_MARKER,
    URLS_FIELD,
    ProjectCodec,
    extension_id_for_opcode,
)

URL = "https://example.com/my-ext.py"


def make_project(*blocks, monitors=None, **extra):
    project = {
        "targets": [{
            "name": "Sprite1",
            "blocks": {f"b{i}": block for i, block in enumerate(blocks)},
        }],
        "monitors": monitors or [],
    }
    project.update(extra)
    return project


class TestExtensionIdForOpcode:

    def test_prefix(self):
        assert extension_id_for_opcode("myExt_go") == "myExt"
        assert extension_id_for_opcode("my_ext_go") == "my"

    def test_forbidden_characters(self):
        assert extension_id_for_opcode("my.ext_go") == "my-ext"

    def test_not_an_extension_opcode(self):
        assert extension_id_for_opcode("go") is None
        assert extension_id_for_opcode("_go") is None
        assert extension_id_for_opcode(None) is None


class TestEncode:
    """Tests for disguising sideloaded blocks."""

    def setup_method(self):
        self.table = {"myExt": URL}
        self.codec = ProjectCodec(BridgeContext(), lambda: self.table)

    def test_sideloaded_block_disguised(self):
        project = make_project({"opcode": "myExt_go", "mutation": {"a": 1}})

        encoded = self.codec.encode(project)
        block = encoded["targets"][0]["blocks"]["b0"]

        assert block["opcode"] == PROCEDURE_CALL
        assert block["mutation"]["proccode"] == f"{SIDELOAD_MARKER}myExt_go"
        assert block["mutation"]["tagName"] == "mutation"
        assert block["mutation"]["children"] == []
        assert json.loads(block["mutation"]["mutation"]) == {"a": 1}
        assert encoded[URLS_FIELD] == {"myExt": URL}

    def test_input_not_mutated(self):
        project = make_project({"opcode": "myExt_go"})
        before = copy.deepcopy(project)

        self.codec.encode(project)

        assert project == before

    def test_block_without_mutation(self):
        encoded = self.codec.encode(make_project({"opcode": "myExt_go"}))
        assert "mutation" not in encoded["targets"][0]["blocks"]["b0"]["mutation"]

    def test_other_blocks_untouched(self):
        block = {"opcode": "motion_movesteps", "inputs": {}}
        encoded = self.codec.encode(make_project(block))

        assert encoded["targets"][0]["blocks"]["b0"] == block

    def test_table_always_written(self):
        self.table = {}
        encoded = self.codec.encode(make_project())

        assert encoded[URLS_FIELD] == {}

    def test_monitors_split(self):
        ours = {"id": "m1", "opcode": "myExt_value"}
        theirs = {"id": "m2", "opcode": "data_variable"}

        encoded = self.codec.encode(make_project(monitors=[ours, theirs]))

        assert encoded["monitors"] == [theirs]
        assert encoded["sideloadMonitors"] == [ours]

    def test_single_sprite(self):
        sprite = {"name": "Sprite1", "blocks": {"b0": {"opcode": "myExt_go"}}}

        encoded = self.codec.encode(sprite)

        assert encoded["blocks"]["b0"]["opcode"] == PROCEDURE_CALL
        assert encoded[URLS_FIELD] == {"myExt": URL}

    def test_encode_json_is_compact(self):
        text = self.codec.encode_json(json.dumps(make_project()))
        assert ": " not in text


class TestDecode:
    """Tests for restoring sideloaded blocks."""

    def setup_method(self):
        self.ctx = BridgeContext()
        self.codec = ProjectCodec(self.ctx, dict)

    def disguised(self, opcode="myExt_go", mutation=None):
        inner = {"tagName": "mutation", "children": [], "proccode": f"{SIDELOAD_MARKER}{opcode}"}
        if mutation is not None:
            inner["mutation"] = mutation
        return {"opcode": PROCEDURE_CALL, "mutation": inner}

    def test_restores_block_and_declares(self):
        project = make_project(self.disguised(), **{URLS_FIELD: {"myExt": URL}})

        self.codec.decode(project)

        assert project["targets"][0]["blocks"]["b0"] == {"opcode": "myExt_go"}
        assert self.ctx.declared_ids == ["myExt", URL]
        assert self.ctx.id_to_url == {"myExt": URL}
        assert URLS_FIELD not in project

    def test_restores_mutation(self):
        project = make_project(self.disguised(mutation='{"a":1}'), **{URLS_FIELD: {"myExt": URL}})

        self.codec.decode(project)

        assert project["targets"][0]["blocks"]["b0"]["mutation"] == {"a": 1}

    def test_bad_mutation_dropped(self):
        project = make_project(self.disguised(mutation="{not json"), **{URLS_FIELD: {"myExt": URL}})

        self.codec.decode(project)

        assert project["targets"][0]["blocks"]["b0"] == {"opcode": "myExt_go"}

    def test_unknown_url_left_disguised(self):
        block = self.disguised()
        project = make_project(copy.deepcopy(block), **{URLS_FIELD: {}})

        self.codec.decode(project)

        assert project["targets"][0]["blocks"]["b0"] == block
        assert self.ctx.declared_ids == []

    def test_host_url_table_fallback(self):
        project = make_project(self.disguised(), extensionURLs={"myExt": URL})

        self.codec.decode(project)

        assert project["targets"][0]["blocks"]["b0"]["opcode"] == "myExt_go"
        assert self.ctx.id_to_url == {"myExt": URL}

    def test_ordinary_procedure_call_untouched(self):
        block = {"opcode": PROCEDURE_CALL, "mutation": {"proccode": "jump %s"}}
        project = make_project(copy.deepcopy(block))

        self.codec.decode(project)

        assert project["targets"][0]["blocks"]["b0"] == block

    def test_legacy_envs_migrated(self):
        """Undisguised blocks of a legacy project still get declared."""
        project = make_project(
            {"opcode": "myExt_go"},
            extensionEnvs={"myExt": {}},
            extensionURLs={"myExt": URL},
        )

        self.codec.decode(project)

        assert self.ctx.id_to_url == {"myExt": URL}
        assert "extensionEnvs" not in project
        assert "sideloadExtensionEnvs" not in project

    def test_extensions_list_marked(self):
        project = make_project(
            self.disguised(),
            extensions={"pen": "1.0.0"},
            **{URLS_FIELD: {"myExt": URL}},
        )

        self.codec.decode(project)

        assert project["extensions"] == {"pen": "1.0.0", "myExt": "0.0.0"}

    def test_extensions_list_skips_unused_ids(self):
        project = make_project(
            {"opcode": "pen_clear"},
            extensions={"pen": "1.0.0"},
            **{URLS_FIELD: {"myExt": URL}},
        )

        self.codec.decode(project)

        assert project["extensions"] == {"pen": "1.0.0"}
        assert self.ctx.id_to_url == {}

    def test_monitors_merged_back(self):
        ours = {"id": "m1", "opcode": "myExt_value"}
        project = make_project(monitors=[{"id": "m2"}], sideloadMonitors=[ours])

        self.codec.decode(project)

        assert project["monitors"] == [{"id": "m2"}, ours]
        assert "sideloadMonitors" not in project

    def test_bad_target_isolated(self):
        project = make_project(self.disguised(), **{URLS_FIELD: {"myExt": URL}})
        project["targets"].insert(0, "not a target")

        self.codec.decode(project)

        assert project["targets"][1]["blocks"]["b0"]["opcode"] == "myExt_go"


class TestRoundTrip:

    def test_plain_project_unchanged(self):
        """A project without sideloaded blocks survives encode then decode."""
        project = make_project(
            {"opcode": "motion_movesteps", "inputs": {"STEPS": [1, [4, "10"]]}},
            {"opcode": PROCEDURE_CALL, "mutation": {"proccode": "jump"}},
            monitors=[{"id": "m1", "opcode": "data_variable"}],
        )
        codec = ProjectCodec(BridgeContext(), lambda: {"myExt": URL})

        assert codec.decode(codec.encode(project)) == project

    @pytest.mark.parametrize("mutation", [None, {"tagName": "mutation", "blockInfo": {"text": "Go"}}])
    def test_sideloaded_block_restored(self, mutation):
        block = {"opcode": "myExt_go", "next": None}
        if mutation is not None:
            block["mutation"] = mutation
        project = make_project(block, monitors=[{"id": "m1", "opcode": "myExt_value"}])
        ctx = BridgeContext()
        codec = ProjectCodec(ctx, lambda: {"myExt": URL})

        encoded = json.loads(json.dumps(codec.encode(project)))
        table = dict(encoded[URLS_FIELD])
        restored = codec.decode(encoded)

        assert restored == project
        assert ctx.is_declared("myExt")
        assert ctx.id_to_url == table
