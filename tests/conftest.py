"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to Python path so 'sideport' is importable without installing
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import copy
import json
import tempfile
from collections import defaultdict
from types import SimpleNamespace
from typing import Generator

import httpx
import pytest

from sideport.capabilities.network import NetworkFetchCapability
from sideport.models.context import BridgeContext
from sideport.patches.applicator import PatchApplicator


class FakeBinder:
    """The host's function-binding primitive."""

    def bind(self, func, *args):
        return lambda *more: func(*args, *more)


class FakeRuntime:
    def __init__(self):
        self._primitives = {
            "argument_reporter_boolean": lambda args, util: util.get_param(str(args.get("VALUE"))),
        }
        self.registered = []
        self.refreshed = []
        self.message_contexts = []
        self.editing_target = SimpleNamespace(id="sprite1")
        self.stage = SimpleNamespace(id="stage")

    def _register_extension_primitives(self, metadata):
        self.registered.append(metadata)

    def _refresh_extension_primitives(self, metadata):
        self.refreshed.append(metadata)

    def get_editing_target(self):
        return self.editing_target

    def get_target_for_stage(self):
        return self.stage

    def make_message_context_for_target(self, target=None):
        self.message_contexts.append(target)
        return {}

    def _convert_for_editor(self, block_info, category_info=None):
        return {"info": block_info, "json": {"type": "converted"}}

    def _convert_button_for_editor(self, button_info, category_info=None):
        return {"info": button_info, "xml": "<button/>"}


class FakeExtensionManager:
    def __init__(self):
        self.loaded_urls = []
        self.refreshed = []

    def load_extension_url(self, url):
        self.loaded_urls.append(url)
        return "host-loaded"

    def refresh_blocks(self, extension_id=None):
        self.refreshed.append(extension_id)
        return "host-refreshed"


class FakeEngine:
    """Stands in for the host engine."""

    def __init__(self, locale="en"):
        self.runtime = FakeRuntime()
        self.extension_manager = FakeExtensionManager()
        self.locale = locale
        self.listeners = defaultdict(list)
        self.project = {"targets": [], "monitors": []}
        self.deserialized = []
        self.loaded_ids = []

    def get_locale(self):
        return self.locale

    def on(self, event, listener):
        self.listeners[event].append(listener)

    def emit(self, event, *args):
        for listener in self.listeners[event]:
            listener(*args)

    def to_json(self, target_id=None):
        return json.dumps(self.project)

    def deserialize_project(self, project_json, *args, **kwargs):
        self.deserialized.append(copy.deepcopy(project_json))
        return "deserialized"

    def set_locale(self, locale, messages=None):
        self.locale = locale
        return "locale-set"

    async def _load_extensions(self, extension_ids, extension_urls=None):
        self.loaded_ids.extend(sorted(extension_ids))


class FakeStore:
    def __init__(self, state):
        self._state = state

    def get_state(self):
        return self._state

    def dispatch(self, action):
        return action

    def subscribe(self, listener):
        return lambda: None


class FakeToolbox:
    def __init__(self):
        self.refreshes = 0

    def refresh_selection(self):
        self.refreshes += 1


class FakeWorkspace:
    def __init__(self):
        self.callbacks = {}
        self.toolbox = FakeToolbox()

    def register_button_callback(self, key, callback):
        self.callbacks[key] = callback

    def get_toolbox(self):
        return self.toolbox


class FakeProcedures:
    def add_create_button_(self, workspace, xml_list):
        xml_list.append("create-button")


class FakeEditor:
    def __init__(self):
        self.procedures = FakeProcedures()
        self.workspace = FakeWorkspace()

    def get_main_workspace(self):
        return self.workspace


class FakePage:
    """The environment the bridge is started in."""

    def __init__(self, loaded=False, store=None):
        self.globals = {}
        self.binder = FakeBinder()
        self.loaded = loaded
        self.store = store

    def is_loaded(self):
        return self.loaded

    def state_root(self):
        return self.store

    def construct(self, obj):
        """What the host does while building its objects."""
        return self.binder.bind(lambda this: this, obj)()


class FakeUtil:
    def __init__(self, params=None):
        self.params = params or {}

    def get_param(self, name):
        return self.params.get(name)


EXTENSION_SCRIPT = '''
class MyExt:
    def get_info(self):
        return {
            "id": "myExt",
            "name": "My Extension",
            "blocks": [
                {"opcode": "go", "block_type": api.BlockType.COMMAND, "text": "Go"},
                "---",
                {"opcode": "double", "block_type": api.BlockType.REPORTER, "text": "double [N]"},
            ],
            "menus": {"colors": ["red", "green"]},
        }

    def go(self, args, util, block_info):
        return "went"

    def double(self, args, util, block_info):
        return api.Cast.to_number(args["N"]) * 2

api.extensions.register(MyExt())
'''


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def applicator() -> PatchApplicator:
    """A fresh applicator so patches never leak between tests."""
    return PatchApplicator()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def editor() -> FakeEditor:
    return FakeEditor()


@pytest.fixture
def ctx(engine) -> BridgeContext:
    return BridgeContext(engine=engine)


@pytest.fixture
def extension_script() -> str:
    return EXTENSION_SCRIPT


@pytest.fixture
def serve_scripts():
    """Build a network capability serving ``{url: source}`` through httpx.MockTransport."""
    def factory(scripts: dict[str, str], requests: list = None) -> NetworkFetchCapability:
        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            source = scripts.get(str(request.url))
            if source is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, text=source)

        return NetworkFetchCapability(transport=httpx.MockTransport(handler))
    return factory
