"""Litestar plugin for stepflow integration.

This module provides the StepflowPlugin, which wires the step registry, store,
execution engine, background processor and run service into a Litestar application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_stepflow.config import StepflowSettings
from litestar_stepflow.engine.executor import ExecutionEngine
from litestar_stepflow.engine.memory import InMemoryStore
from litestar_stepflow.engine.processor import BackgroundProcessor
from litestar_stepflow.engine.registry import StepRegistry
from litestar_stepflow.engine.service import RunService
from litestar_stepflow.exceptions import StepflowError
from litestar_stepflow.logging import configure_logging

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from litestar_stepflow.core.protocols import LlmClient

__all__ = ["StepflowPlugin", "StepflowPluginConfig"]

logger = logging.getLogger(__name__)


@dataclass
class StepflowPluginConfig:
    """Configuration for the StepflowPlugin.

    Attributes:
        registry: Pre-populated StepRegistry. An empty one is created when omitted.
        store: Store implementing both store protocols. When omitted, a
            SQLAlchemyStore is built from ``settings.database_url`` if set, otherwise
            an InMemoryStore is used.
        llm_client: Language model client used by llm steps.
        settings: Runtime settings. Loaded from the environment when omitted.
        engine: Pre-built ExecutionEngine. Takes precedence over ``llm_client``.
        processor: Pre-built BackgroundProcessor.
        autostart_processor: Start the processor on app startup and stop it on
            shutdown. Defaults to False.
        configure_logging: Install the key=value log formatter at the configured level.
        dependency_key_registry: The key used for dependency injection of the
            StepRegistry. Defaults to "stepflow_registry".
        dependency_key_engine: The key used for dependency injection of the
            ExecutionEngine. Defaults to "stepflow_engine".
        enable_api: Whether to enable the REST API endpoints. Defaults to True.
        api_path_prefix: URL path prefix for all stepflow API endpoints.
            Defaults to "/stepflow".
        api_guards: List of Litestar guards to apply to all stepflow API endpoints.
        api_tags: OpenAPI tags to apply to stepflow API endpoints.
        include_api_in_schema: Whether to include API endpoints in OpenAPI schema.
            Defaults to True.
    """

    registry: StepRegistry | None = None
    store: Any | None = None
    llm_client: LlmClient | None = None
    settings: StepflowSettings | None = None
    engine: ExecutionEngine | None = None
    processor: BackgroundProcessor | None = None
    autostart_processor: bool = False
    configure_logging: bool = False
    dependency_key_registry: str = "stepflow_registry"
    dependency_key_engine: str = "stepflow_engine"
    enable_api: bool = True
    api_path_prefix: str = "/stepflow"
    api_guards: list[Any] = field(default_factory=list)
    api_tags: list[str] = field(default_factory=lambda: ["Stepflow"])
    include_api_in_schema: bool = True


class StepflowPlugin(InitPluginProtocol):
    """Litestar plugin for stepflow.

    The run service and processor are always injected as ``stepflow_service`` and
    ``stepflow_processor``; the REST controllers depend on those names.

    Example:
        Serving the bundled lead triage workflow::

            from litestar import Litestar
            from litestar_stepflow import StepflowPlugin, StepflowPluginConfig
            from litestar_stepflow.workflows.lead import create_lead_registry, make_parse_email_llm

            app = Litestar(
                plugins=[
                    StepflowPlugin(
                        config=StepflowPluginConfig(
                            registry=create_lead_registry(),
                            llm_client=make_parse_email_llm(),
                            autostart_processor=True,
                        )
                    )
                ]
            )

        Using the service in a route handler::

            from litestar import post
            from litestar_stepflow import RunService


            @post("/leads/{workflow_id:str}")
            async def submit_lead(workflow_id: str, data: dict, stepflow_service: RunService) -> dict:
                run = await stepflow_service.start_run(workflow_id, input=data)
                return {"run_id": run.id, "status": run.status}
    """

    __slots__ = ("_config", "_engine", "_owns_store", "_processor", "_registry", "_service", "_settings", "_store")

    def __init__(self, config: StepflowPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or StepflowPluginConfig()
        self._settings: StepflowSettings | None = None
        self._registry: StepRegistry | None = None
        self._store: Any | None = None
        self._owns_store = False
        self._engine: ExecutionEngine | None = None
        self._processor: BackgroundProcessor | None = None
        self._service: RunService | None = None

    def _require(self, value: Any, name: str) -> Any:
        if value is None:
            msg = f"StepflowPlugin has not been initialized. Access {name} after app startup."
            raise RuntimeError(msg)
        return value

    @property
    def registry(self) -> StepRegistry:
        """Get the step registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        return self._require(self._registry, "registry")

    @property
    def store(self) -> Any:
        """Get the store.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        return self._require(self._store, "store")

    @property
    def engine(self) -> ExecutionEngine:
        """Get the execution engine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        return self._require(self._engine, "engine")

    @property
    def processor(self) -> BackgroundProcessor:
        """Get the background processor.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        return self._require(self._processor, "processor")

    @property
    def service(self) -> RunService:
        """Get the run service.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        return self._require(self._service, "service")

    def _build_store(self, settings: StepflowSettings) -> Any:
        if self._config.store is not None:
            return self._config.store
        if settings.database_url:
            from litestar_stepflow.db.store import SQLAlchemyStore

            self._owns_store = True
            return SQLAlchemyStore.from_url(settings.database_url, default_max_retries=settings.run_max_retries)
        return InMemoryStore(default_max_retries=settings.run_max_retries)

    async def _on_startup(self) -> None:
        if self._owns_store:
            await self._store.create_schema()
        if self._config.autostart_processor:
            await self.processor.start()

    async def _on_shutdown(self) -> None:
        if self._config.autostart_processor:
            await self.processor.stop()
        if self._owns_store:
            await self._store.dispose()

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Loads settings and optionally configures logging
        2. Creates or uses the provided registry, store, engine and processor
        3. Adds dependency providers to the app config
        4. Registers processor and store lifecycle hooks
        5. Optionally registers REST API controllers if enable_api=True

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        settings = self._settings = self._config.settings or StepflowSettings()
        if self._config.configure_logging:
            configure_logging(settings.log_level)

        self._registry = self._config.registry or StepRegistry()
        self._store = self._build_store(settings)
        self._engine = self._config.engine or ExecutionEngine.from_settings(
            self._registry,
            self._store,
            llm_client=self._config.llm_client,
            settings=settings,
        )
        self._processor = self._config.processor or BackgroundProcessor.from_settings(
            self._engine,
            self._store,
            settings,
        )
        self._service = RunService(self._store, self._engine, settings)

        def provide_registry() -> StepRegistry:
            return self._registry  # type: ignore[return-value]

        def provide_engine() -> ExecutionEngine:
            return self._engine  # type: ignore[return-value]

        def provide_processor() -> BackgroundProcessor:
            return self._processor  # type: ignore[return-value]

        def provide_service() -> RunService:
            return self._service  # type: ignore[return-value]

        app_config.dependencies[self._config.dependency_key_registry] = Provide(provide_registry, sync_to_thread=False)
        app_config.dependencies[self._config.dependency_key_engine] = Provide(provide_engine, sync_to_thread=False)
        app_config.dependencies["stepflow_processor"] = Provide(provide_processor, sync_to_thread=False)
        app_config.dependencies["stepflow_service"] = Provide(provide_service, sync_to_thread=False)

        app_config.on_startup.append(self._on_startup)
        app_config.on_shutdown.append(self._on_shutdown)

        if self._config.enable_api:
            from litestar import Router

            from litestar_stepflow.web.controllers import (
                HealthController,
                ProcessorController,
                RunController,
                WorkflowController,
            )
            from litestar_stepflow.web.exceptions import stepflow_exception_handler

            stepflow_router = Router(
                path=self._config.api_path_prefix,
                route_handlers=[WorkflowController, RunController, ProcessorController, HealthController],
                guards=self._config.api_guards,
                tags=self._config.api_tags,
                include_in_schema=self._config.include_api_in_schema,
            )
            app_config.route_handlers.append(stepflow_router)
            app_config.exception_handlers[StepflowError] = stepflow_exception_handler  # type: ignore[assignment]

        logger.debug(
            "Stepflow plugin initialized",
            extra={"store": type(self._store).__name__, "api": self._config.enable_api},
        )
        return app_config
