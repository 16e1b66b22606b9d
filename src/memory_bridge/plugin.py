"""Host runtime integration.

Wires the capture and recall paths into an agent runtime:

1. Resolve settings from the host's plugin config (env fallback)
2. Build the memory service client and the conversation buffer registry
3. Register the built-in and integration tools
4. Register ``before_agent_start`` (recall) and ``agent_end`` (capture) hooks
5. Register a service whose ``stop`` drains every channel buffer
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from memory_bridge.capture.events import capture_messages, channel_key_for
from memory_bridge.capture.models import FlushOutcome
from memory_bridge.capture.registry import ConversationBufferRegistry
from memory_bridge.client import MemoryApiClient, MemoryApiError
from memory_bridge.config import Settings, resolve_settings
from memory_bridge.constants import PLUGIN_ID, RECALL_HOOK_PRIORITY
from memory_bridge.logging import get_logger, setup_logging
from memory_bridge.recall.injector import ContextInjector
from memory_bridge.tools import ToolDefinition, build_integration_tools, build_memory_tools

log = get_logger("memory_bridge.plugin")


class PluginHost(Protocol):
    """The slice of the agent runtime API this plugin uses."""

    config: Mapping[str, Any] | None

    def on(
        self,
        hook_name: str,
        handler: Callable[[Any], Awaitable[Any]],
        *,
        priority: int | None = None,
    ) -> None: ...

    def register_tool(self, tool: ToolDefinition) -> None: ...

    def register_service(self, service: Any) -> None: ...


@dataclass
class BufferService:
    """Lifecycle handle registered with the host."""

    registry: ConversationBufferRegistry
    id: str = PLUGIN_ID

    async def start(self) -> None:
        log.info("memory_service_started")

    async def stop(self) -> list[FlushOutcome]:
        outcomes = await self.registry.drain_all()
        log.info("memory_service_stopped", channels_flushed=len(outcomes))
        return outcomes


class MemoryBridgePlugin:
    """Connects a host runtime to the decision-memory service."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: MemoryApiClient | None = None,
        registry: ConversationBufferRegistry | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or MemoryApiClient(
            settings.api_url,
            settings.api_key.get_secret_value(),
            timeout=settings.request_timeout,
        )
        self._registry = registry or ConversationBufferRegistry(
            self._client,
            source=settings.capture_source,
            silence_window=settings.silence_window_seconds,
            max_buffer_size=settings.max_buffer_size,
            overlap_size=settings.overlap_size,
            min_flush_size=settings.min_flush_size,
        )
        self._injector = ContextInjector(self._client, max_tokens=settings.recall_max_tokens)
        self._now = now or (lambda: datetime.now(UTC))

    @classmethod
    def from_host_config(cls, host_config: Mapping[str, Any] | None) -> MemoryBridgePlugin | None:
        """Build a plugin from host config, or ``None`` when no API key is set."""
        return cls.from_settings(resolve_settings(host_config))

    @classmethod
    def from_settings(cls, settings: Settings) -> MemoryBridgePlugin | None:
        if not settings.has_api_key:
            log.error(
                "api_key_missing",
                hint="Set apiKey in the plugin config or MEMORY_BRIDGE_API_KEY",
            )
            return None
        return cls(settings)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> ConversationBufferRegistry:
        return self._registry

    @property
    def injector(self) -> ContextInjector:
        return self._injector

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def before_agent_start(self, event: Any) -> dict[str, str]:
        """Recall hook: maybe prepend past decisions to the prompt."""
        return await self._injector.before_agent_start(event)

    async def agent_end(self, event: Any) -> None:
        """Capture hook: buffer the turn's messages for extraction."""
        messages = capture_messages(event, now=self._now())
        if not messages:
            return
        await self._registry.append(channel_key_for(event), messages)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(self, host: PluginHost) -> BufferService:
        """Register tools, hooks and the lifecycle service with the host."""
        log.info("connecting", api_url=self._settings.api_url)

        builtin = build_memory_tools(self._client, source=self._settings.capture_source)
        for tool in builtin:
            host.register_tool(tool)
        await self._register_integration_tools(host, reserved={tool.name for tool in builtin})

        if self._settings.auto_recall:
            host.on("before_agent_start", self.before_agent_start, priority=RECALL_HOOK_PRIORITY)
        if self._settings.auto_capture:
            host.on("agent_end", self.agent_end)

        service = BufferService(registry=self._registry)
        host.register_service(service)

        log.info(
            "plugin_ready",
            recall=self._settings.auto_recall,
            capture=self._settings.auto_capture,
        )
        return service

    async def _register_integration_tools(self, host: PluginHost, reserved: set[str]) -> None:
        try:
            capabilities = await self._client.capabilities()
        except MemoryApiError as exc:
            log.warning("integration_tools_unavailable", error=str(exc))
            return

        tools = build_integration_tools(self._client, capabilities, reserved=reserved)
        for tool in tools:
            host.register_tool(tool)

        advertised = capabilities.get("integrations")
        names = [str(item) for item in advertised] if isinstance(advertised, list) else []
        integrations = ", ".join(names) or "none"
        if tools:
            log.info("integration_tools_registered", count=len(tools), integrations=integrations)
        else:
            log.info("no_integration_tools", integrations=integrations)


async def register(host: PluginHost) -> BufferService | None:
    """Plugin entry point called by the host runtime."""
    settings = resolve_settings(host.config)
    setup_logging(settings)
    plugin = MemoryBridgePlugin.from_settings(settings)
    if plugin is None:
        return None
    return await plugin.register(host)
