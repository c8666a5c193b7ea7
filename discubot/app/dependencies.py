"""
Dependency Injection for Discubot.

Provides singleton instances of the services behind the webhooks.

Storage modes (DISCUBOT_STORAGE):
    memory:  in-memory configuration, records and in-flight markers
             (local runs and tests; configuration is seeded in code)
    mongodb: configuration, records and a durable in-flight lock in MongoDB
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from discubot.config import (
    AppSettings,
    BaseConfigurationService,
    ConfigurationService,
    InMemoryConfigurationService,
)
from discubot.providers.llm import AnthropicLLMProvider, LLMProvider, OpenAILLMProvider
from discubot.services import AIAnalysisService, DiscussionProcessor, NotionTaskCreator
from discubot.store import (
    DiscussionStore,
    InFlightRegistry,
    InMemoryDiscussionStore,
    InMemoryInFlightRegistry,
    MongoDiscussionStore,
    MongoInFlightRegistry,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("DISCUBOT_SERVICE_NAME", "discubot"),
        environment=os.getenv("DISCUBOT_ENVIRONMENT", "development"),
        debug=os.getenv("DISCUBOT_DEBUG", "false").lower() == "true",
        # Storage
        storage=os.getenv("DISCUBOT_STORAGE", "memory").lower(),
        mongodb_url=os.getenv("DISCUBOT_MONGODB_URL", "mongodb://localhost:27017"),
        mongodb_database=os.getenv("DISCUBOT_MONGODB_DATABASE", "discubot"),
        # Language model
        llm_provider=os.getenv("DISCUBOT_LLM_PROVIDER", "anthropic").lower(),
        llm_model=os.getenv("DISCUBOT_LLM_MODEL") or None,
        anthropic_api_key=os.getenv("DISCUBOT_ANTHROPIC_API_KEY") or None,
        openai_api_key=os.getenv("DISCUBOT_OPENAI_API_KEY") or None,
        # Inbound verification
        slack_signing_secret=os.getenv("DISCUBOT_SLACK_SIGNING_SECRET") or None,
        # Processing
        inflight_ttl_seconds=int(os.getenv("DISCUBOT_INFLIGHT_TTL_SECONDS", "900")),
        analysis_cache_ttl_seconds=int(os.getenv("DISCUBOT_ANALYSIS_CACHE_TTL_SECONDS", "3600")),
        analysis_cache_size=int(os.getenv("DISCUBOT_ANALYSIS_CACHE_SIZE", "1024")),
        notion_min_interval=float(os.getenv("DISCUBOT_NOTION_MIN_INTERVAL", "0.2")),
        trigger_keyword=os.getenv("DISCUBOT_TRIGGER_KEYWORD", "@discubot"),
    )


# Global instances (initialized on first access)
_config_service: BaseConfigurationService | None = None
_store: DiscussionStore | None = None
_inflight: InFlightRegistry | None = None
_ai_service: AIAnalysisService | None = None
_processor: DiscussionProcessor | None = None


def _use_mongodb(settings: AppSettings) -> bool:
    return settings.storage == "mongodb"


def get_config_service() -> BaseConfigurationService:
    """Get the configuration service for the configured storage mode."""
    global _config_service
    if _config_service is None:
        settings = get_settings()
        if _use_mongodb(settings):
            _config_service = ConfigurationService(
                mongodb_url=settings.mongodb_url.get_secret_value(),
                database_name=settings.mongodb_database,
            )
        else:
            _config_service = InMemoryConfigurationService()
    return _config_service


def get_store() -> DiscussionStore:
    global _store
    if _store is None:
        settings = get_settings()
        if _use_mongodb(settings):
            _store = MongoDiscussionStore(
                settings.mongodb_url.get_secret_value(),
                settings.mongodb_database,
            )
        else:
            _store = InMemoryDiscussionStore()
    return _store


def get_inflight() -> InFlightRegistry:
    global _inflight
    if _inflight is None:
        settings = get_settings()
        if _use_mongodb(settings):
            _inflight = MongoInFlightRegistry(
                settings.mongodb_url.get_secret_value(),
                settings.mongodb_database,
            )
        else:
            _inflight = InMemoryInFlightRegistry()
    return _inflight


def build_llm_provider(settings: AppSettings) -> LLMProvider | None:
    """
    Application-wide model provider.

    Prefers the configured provider, falling back to whichever key is set.
    """
    anthropic_key = settings.anthropic_api_key.get_secret_value() if settings.anthropic_api_key else ""
    openai_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else ""

    if settings.llm_provider == "openai" and openai_key:
        return OpenAILLMProvider(api_key=openai_key, model=settings.llm_model or "gpt-4o-mini")
    if anthropic_key:
        if settings.llm_model:
            return AnthropicLLMProvider(api_key=anthropic_key, model=settings.llm_model)
        return AnthropicLLMProvider(api_key=anthropic_key)
    if openai_key:
        return OpenAILLMProvider(api_key=openai_key)

    logger.warning("[deps] No model API key configured; flows must bring their own key")
    return None


def get_ai_service() -> AIAnalysisService:
    global _ai_service
    if _ai_service is None:
        settings = get_settings()
        _ai_service = AIAnalysisService(
            build_llm_provider(settings),
            cache_ttl=settings.analysis_cache_ttl_seconds,
            cache_size=settings.analysis_cache_size,
            provider_factory=lambda key: AnthropicLLMProvider(api_key=key),
        )
    return _ai_service


def get_processor() -> DiscussionProcessor:
    """Get the discussion processor wired to the configured services."""
    global _processor
    if _processor is None:
        settings = get_settings()
        _processor = DiscussionProcessor(
            config_service=get_config_service(),
            store=get_store(),
            inflight=get_inflight(),
            ai_service=get_ai_service(),
            task_creator=NotionTaskCreator(min_interval=settings.notion_min_interval),
            inflight_ttl=settings.inflight_ttl_seconds,
        )
    return _processor


async def initialize_services() -> None:
    """
    Initialize all services on application startup.

    Called from FastAPI lifespan.
    """
    settings = get_settings()
    config_service = get_config_service()
    store = get_store()
    inflight = get_inflight()

    if _use_mongodb(settings):
        await config_service.connect()
        await store.connect()
        await inflight.connect()

    get_processor()
    logger.info(f"[deps] Services initialized (storage={settings.storage})")


async def shutdown_services() -> None:
    """
    Cleanup all services on application shutdown.

    Called from FastAPI lifespan.
    """
    global _config_service, _store, _inflight, _ai_service, _processor
    for service in (_config_service, _store, _inflight):
        close = getattr(service, "close", None)
        if close is not None:
            await close()

    _config_service = None
    _store = None
    _inflight = None
    _ai_service = None
    _processor = None
