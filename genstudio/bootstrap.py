"""
Wiring for a ready-to-use orchestrator.

Builds provider clients and adapters from environment configuration, the
stores behind the job registry and quota guard, and the orchestrator on top.
"""

from typing import Iterable, List, Optional

from .config import OrchestratorConfig, create_config_for_provider, get_available_providers
from .exceptions import ConfigurationError
from .logger import get_library_logger
from .orchestrator import Orchestrator
from .providers import (
    FalClient,
    ProviderAdapter,
    RunwayClient,
    SoraClient,
    fal_queue_adapter,
    fal_run_adapter,
    fal_subscribe_adapter,
    runway_adapter,
    sora_adapter,
)
from .quota import QuotaGuard
from .registry import JobRegistry
from .routing import AdapterRouter
from .storage import InMemoryStore, JsonFileStore, KeyValueStore


def build_adapters(provider: str, config) -> List[ProviderAdapter]:
    """
    Create the adapters for one configured provider.

    Raises:
        ConfigurationError: If the provider is unknown
    """
    if provider == "fal":
        client = FalClient(config)
        return [fal_subscribe_adapter(client), fal_queue_adapter(client), fal_run_adapter(client)]
    if provider == "runway":
        return [runway_adapter(RunwayClient(config))]
    if provider == "openai":
        return [sora_adapter(SoraClient(config))]
    raise ConfigurationError(f"Unsupported provider: {provider}")


def build_default_router(providers: Optional[Iterable[str]] = None) -> AdapterRouter:
    """
    Build a router over the given providers, or every configured one.

    When ``providers`` is omitted, a provider whose settings fail validation
    is skipped with a warning; when it is given, the error propagates.
    """
    logger = get_library_logger()
    explicit = providers is not None
    router = AdapterRouter()

    for provider in (providers if explicit else get_available_providers()):
        try:
            config = create_config_for_provider(provider)
        except ConfigurationError as e:
            if explicit:
                raise
            logger.warning(f"Skipping provider {provider}: {e}")
            continue
        for adapter in build_adapters(provider, config):
            router.register(adapter)

    if not router.adapters:
        logger.warning("No providers configured; every model will be reported as unsupported")
    return router


def _store(path: str, persistent: bool) -> KeyValueStore:
    return JsonFileStore(path) if persistent and path else InMemoryStore()


def create_orchestrator(
    config: Optional[OrchestratorConfig] = None,
    router: Optional[AdapterRouter] = None,
    persistent: bool = True,
) -> Orchestrator:
    """
    Create an orchestrator with its registry, quota guard and router.

    Args:
        config: Orchestrator settings; read from the environment if omitted
        router: Adapter router; built from configured providers if omitted
        persistent: Back jobs and quota with the configured JSON files

    Returns:
        Orchestrator ready to accept submissions
    """
    config = config or OrchestratorConfig.from_environment()
    config.validate()

    registry = JobRegistry(
        retention_seconds=config.retention_seconds,
        undelivered_retention_seconds=config.undelivered_retention_seconds,
        store=_store(config.jobs_file, persistent),
    )
    quota = QuotaGuard(
        _store(config.quota_file, persistent),
        limit=config.free_generation_limit,
        reset_policy=config.quota_reset_policy,
    )
    quota.initialize()

    return Orchestrator(
        router if router is not None else build_default_router(),
        registry,
        quota,
        max_job_age_seconds=config.max_job_age_seconds,
    )
