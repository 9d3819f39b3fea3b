"""Sideload loader - fetch, run and register extensions the engine never sees.

A load fetches the script, runs it in a fresh sandbox context with the
capability object injected as ``api``, and settles when the script calls
``api.extensions.register(descriptor)``. The descriptor is normalized and
handed straight to the runtime; the engine's extension manager is never
involved.
"""

import asyncio
import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from sideport.capabilities.api import make_host_api
from sideport.capabilities.network import NetworkFetchCapability
from sideport.core.errors import FetchError, ScriptExecutionError, SideportError
from sideport.core.logging import get_logger
from sideport.models.context import BridgeContext
from sideport.models.extension import ExtensionMetadata, LoadedExtensionRecord
from sideport.vm.sandbox import Sandbox, SandboxError, ScriptContext
from .normalizer import ExtensionNormalizer

logger = get_logger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}


class SideloadLoader:
    """Loads extension scripts by URL, one record per URL."""

    def __init__(
        self,
        ctx: BridgeContext,
        normalizer: Optional[ExtensionNormalizer] = None,
        network: Optional[NetworkFetchCapability] = None,
        sandbox: Optional[Sandbox] = None,
        editor_trap: Any = None
    ):
        self._ctx = ctx
        self._normalizer = normalizer or ExtensionNormalizer(ctx)
        self._network = network or NetworkFetchCapability()
        self._sandbox = sandbox or Sandbox()
        self.editor_trap = editor_trap
        self.loaded: dict[str, LoadedExtensionRecord] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    def is_loaded(self, url: str) -> bool:
        return url in self.loaded

    def sideload_urls(self) -> dict[str, str]:
        """Extension id -> URL of every loaded extension."""
        return {record.metadata.id: url for url, record in self.loaded.items()}

    def load(self, url: str) -> asyncio.Future:
        """Start loading ``url``; concurrent calls share one future.

        Loading a URL again after it finished is a fresh load.
        """
        future = self._inflight.get(url)
        if future is not None and not future.done():
            return future

        future = asyncio.ensure_future(self._load(url))
        self._inflight[url] = future

        def forget(done: asyncio.Future) -> None:
            if self._inflight.get(url) is done:
                del self._inflight[url]

        future.add_done_callback(forget)
        return future

    async def _load(self, url: str) -> LoadedExtensionRecord:
        start = time.time()
        source = await self._fetch(url)
        record = await self._run(url, source)
        logger.extension_registered(
            record.metadata.id,
            url,
            (time.time() - start) * 1000
        )
        return record

    async def _fetch(self, url: str) -> str:
        try:
            response = await self._network.fetch(url, headers=dict(NO_CACHE_HEADERS))
        except (httpx.HTTPError, PermissionError) as e:
            raise FetchError(f"Could not fetch extension: {e}", url=url, cause=e) from e

        if response.is_error:
            raise FetchError(
                "Extension request failed",
                url=url,
                status_code=response.status_code
            )
        return response.text

    async def _run(self, url: str, source: str) -> LoadedExtensionRecord:
        registered = asyncio.get_running_loop().create_future()
        context: Optional[ScriptContext] = None

        def register(descriptor: Any) -> None:
            if registered.done():
                logger.warning(
                    "Extension registered more than once, ignoring",
                    component="loader",
                    url=url
                )
                return
            try:
                metadata = self._normalizer.normalize(descriptor)
                self._ctx.engine.runtime._register_extension_primitives(metadata)
            except Exception as e:
                registered.set_exception(e)
                if context is not None:
                    context.release()
                raise

            record = LoadedExtensionRecord(url=url, descriptor=descriptor, metadata=metadata)
            self.loaded[url] = record
            if context is not None:
                context.release()
            registered.set_result(record)

        api = make_host_api(
            register,
            engine=self._ctx.engine,
            network=self._network,
            editor_trap=self.editor_trap
        )
        context = self._sandbox.create_context(url, {"api": api})

        try:
            self._sandbox.run(context, source)
        except SandboxError as e:
            context.release()
            if not registered.done():
                raise ScriptExecutionError(
                    f"Extension script failed: {e}",
                    url=url,
                    traceback=e.traceback,
                    cause=e
                ) from e
            # register() was already called; its outcome settles the load.
            logger.warning(f"Extension script raised after calling register: {e}", component="loader", url=url)

        # No timeout: a script that never registers leaves this pending.
        return await registered

    def inspect_source(self, source: str, url: str = "<inline>") -> ExtensionMetadata:
        """Run ``source`` and normalize the descriptor it registers.

        Nothing is handed to an engine; used for offline inspection.

        Raises:
            ScriptExecutionError: the script raised, or never registered.
        """
        descriptors: list[Any] = []
        api = make_host_api(descriptors.append, network=self._network)
        context = self._sandbox.create_context(url, {"api": api})
        try:
            self._sandbox.run(context, source)
        except SandboxError as e:
            if not descriptors:
                raise ScriptExecutionError(
                    f"Extension script failed: {e}",
                    url=url,
                    traceback=e.traceback,
                    cause=e
                ) from e
        finally:
            context.release()

        if not descriptors:
            raise ScriptExecutionError(
                "Extension script never called api.extensions.register",
                url=url,
                suggestion="Call api.extensions.register(MyExtension()) at module level"
            )
        return self._normalizer.normalize(descriptors[0])

    def refresh(self, extension_id: Optional[str] = None) -> bool:
        """Re-normalize loaded extensions and push them to the runtime.

        With ``extension_id``, only that extension is refreshed.

        Returns:
            Whether any loaded extension was refreshed.
        """
        refreshed = False
        for url, record in list(self.loaded.items()):
            if extension_id is not None and record.metadata.id != extension_id:
                continue
            try:
                metadata = self._normalizer.normalize(record.descriptor)
            except (SideportError, ValidationError, TypeError, ValueError) as e:
                logger.error(
                    f"Error refreshing extension: {e}",
                    component="loader",
                    extension=record.metadata.id,
                    url=url
                )
                continue
            record.metadata = metadata
            self._ctx.engine.runtime._refresh_extension_primitives(metadata)
            refreshed = True
        return refreshed
