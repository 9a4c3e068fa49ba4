"""Tests for the StepflowPlugin."""

from __future__ import annotations

import pytest
from litestar import Litestar, get
from litestar.testing import AsyncTestClient

from litestar_stepflow import StepflowPlugin, StepflowPluginConfig
from litestar_stepflow.config import StepflowSettings
from litestar_stepflow.core.types import StepKind
from litestar_stepflow.engine.executor import ExecutionEngine
from litestar_stepflow.engine.memory import InMemoryStore
from litestar_stepflow.engine.processor import BackgroundProcessor
from litestar_stepflow.engine.registry import StepRegistry
from litestar_stepflow.engine.service import RunService


@pytest.mark.unit
class TestStepflowPluginProperties:
    """Accessors before and after initialization."""

    @pytest.mark.parametrize("name", ["registry", "store", "engine", "processor", "service"])
    def test_access_before_init_raises(self, name: str) -> None:
        plugin = StepflowPlugin()

        with pytest.raises(RuntimeError, match="has not been initialized"):
            getattr(plugin, name)

    def test_components_after_init(self, step_registry: StepRegistry) -> None:
        store = InMemoryStore()
        plugin = StepflowPlugin(StepflowPluginConfig(registry=step_registry, store=store))

        Litestar(plugins=[plugin])

        assert plugin.registry is step_registry
        assert plugin.store is store
        assert plugin.engine.store is store
        assert plugin.processor.engine is plugin.engine
        assert plugin.service.engine is plugin.engine

    def test_defaults_to_memory_store(self) -> None:
        plugin = StepflowPlugin(StepflowPluginConfig(settings=StepflowSettings(run_max_retries=5)))

        Litestar(plugins=[plugin])

        assert isinstance(plugin.store, InMemoryStore)
        assert plugin.store.default_max_retries == 5
        assert plugin.registry.names(StepKind.TOOL) == []

    def test_processor_follows_settings(self) -> None:
        settings = StepflowSettings(poll_interval_seconds=0.5, poll_page_size=4, processor_concurrency=2)
        plugin = StepflowPlugin(StepflowPluginConfig(settings=settings))

        Litestar(plugins=[plugin])

        assert plugin.processor.poll_interval == 0.5
        assert plugin.processor.page_size == 4
        assert plugin.processor.concurrency == 2

    def test_prebuilt_engine_is_used(self, step_registry: StepRegistry) -> None:
        store = InMemoryStore()
        engine = ExecutionEngine(step_registry, store)
        plugin = StepflowPlugin(StepflowPluginConfig(registry=step_registry, store=store, engine=engine))

        Litestar(plugins=[plugin])

        assert plugin.engine is engine

    def test_api_can_be_disabled(self) -> None:
        app = Litestar(plugins=[StepflowPlugin(StepflowPluginConfig(enable_api=False))])

        assert not [route for route in app.routes if route.path.startswith("/stepflow")]


@pytest.mark.integration
@pytest.mark.asyncio
class TestStepflowPluginApp:
    """The plugin inside a running application."""

    async def test_dependencies_are_injected(self, step_registry: StepRegistry) -> None:
        """Registry, engine, processor and service are available to route handlers."""

        @get("/deps")
        async def deps(
            stepflow_registry: StepRegistry,
            stepflow_engine: ExecutionEngine,
            stepflow_processor: BackgroundProcessor,
            stepflow_service: RunService,
        ) -> dict[str, str]:
            return {
                "registry": type(stepflow_registry).__name__,
                "engine": type(stepflow_engine).__name__,
                "processor": type(stepflow_processor).__name__,
                "service": type(stepflow_service).__name__,
            }

        plugin = StepflowPlugin(StepflowPluginConfig(registry=step_registry))
        app = Litestar(route_handlers=[deps], plugins=[plugin])

        async with AsyncTestClient(app=app) as client:
            response = await client.get("/deps")

        assert response.json() == {
            "registry": "StepRegistry",
            "engine": "ExecutionEngine",
            "processor": "BackgroundProcessor",
            "service": "RunService",
        }

    async def test_custom_dependency_keys(self, step_registry: StepRegistry) -> None:
        @get("/registry")
        async def registry_names(workflow_steps: StepRegistry) -> list[str]:
            return workflow_steps.names(StepKind.TOOL)

        plugin = StepflowPlugin(
            StepflowPluginConfig(registry=step_registry, dependency_key_registry="workflow_steps", enable_api=False)
        )
        app = Litestar(route_handlers=[registry_names], plugins=[plugin])

        async with AsyncTestClient(app=app) as client:
            response = await client.get("/registry")

        assert "echo" in response.json()

    async def test_autostart_processor(self) -> None:
        """The processor polls for the lifetime of the application."""
        plugin = StepflowPlugin(StepflowPluginConfig(autostart_processor=True))
        app = Litestar(plugins=[plugin])

        async with AsyncTestClient(app=app) as client:
            response = await client.get("/stepflow/processor/status")
            assert response.json()["is_processing"] is True

        assert plugin.processor.is_processing is False

    async def test_processor_not_started_by_default(self) -> None:
        plugin = StepflowPlugin()
        app = Litestar(plugins=[plugin])

        async with AsyncTestClient(app=app):
            assert plugin.processor.is_processing is False
