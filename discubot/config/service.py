"""
Configuration Service for Discubot.

Resolves which flow (inputs + outputs + domains + AI settings) owns an
inbound discussion. Flows are matched by the source's workspace identifier
(Slack team id, Notion workspace id, Figma email slug); when no flow
matches, the legacy single-output source config is used.

Two backends share the resolution logic:
- ConfigurationService: MongoDB via motor, with a TTL cache
- InMemoryConfigurationService: dict-backed, for tests and local runs
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel

from discubot.models import SourceType

from .schemas import (
    AdapterConfig,
    Flow,
    FlowInput,
    FlowOutput,
    ResolvedConfig,
    SourceConfig,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Which source_metadata field identifies the tenant for each source kind
_TEAM_FIELDS: dict[SourceType, str] = {
    SourceType.SLACK: "slack_team_id",
    SourceType.NOTION: "notion_workspace_id",
    SourceType.FIGMA: "email_slug",
}


class TTLCache:
    """Simple TTL cache for configuration data."""

    def __init__(self, ttl_seconds: int = 300):
        self._cache: dict[str, tuple[Any, datetime]] = {}
        self._ttl = timedelta(seconds=ttl_seconds)

    def get(self, key: str) -> Any | None:
        if key in self._cache:
            value, expires = self._cache[key]
            if datetime.now(UTC) < expires:
                return value
            del self._cache[key]
        return None

    def set(self, key: str, value: Any) -> None:
        expires = datetime.now(UTC) + self._ttl
        self._cache[key] = (value, expires)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class BaseConfigurationService(ABC):
    """
    Resolution logic shared by every configuration backend.

    Subclasses only implement the four lookups.
    """

    @abstractmethod
    async def find_flow_input(self, team_id: str, source_type: SourceType) -> FlowInput | None:
        """Active input whose source metadata matches the team id."""
        ...

    @abstractmethod
    async def get_flow(self, flow_id: str) -> Flow | None:
        ...

    @abstractmethod
    async def list_outputs(self, flow_id: str) -> list[FlowOutput]:
        ...

    @abstractmethod
    async def get_source_config(self, team_id: str, source_type: SourceType) -> SourceConfig | None:
        """Legacy single-output config for a team and source kind."""
        ...

    async def resolve(self, team_id: str, source_type: SourceType) -> ResolvedConfig | None:
        """
        Resolve the configuration owning a discussion.

        Returns:
            ResolvedConfig from the matching flow, else from the legacy
            source config, else None
        """
        flow_input = await self.find_flow_input(team_id, source_type)
        if flow_input is not None:
            flow = await self.get_flow(flow_input.flow_id)
            if flow is not None and flow.active:
                outputs = await self.list_outputs(flow.id)
                logger.debug(
                    f"[config] Resolved flow={flow.id} for team={team_id} "
                    f"source={source_type.value} ({len(outputs)} outputs)"
                )
                return ResolvedConfig.from_flow(flow, flow_input, outputs)
            logger.warning(f"[config] Input {flow_input.id} points at missing/inactive flow")

        legacy = await self.get_source_config(team_id, source_type)
        if legacy is not None and legacy.active:
            logger.info(f"[config] Using legacy config {legacy.id} for team={team_id}")
            return ResolvedConfig.from_source_config(legacy)

        return None

    async def adapter_config_for(self, team_id: str, source_type: SourceType) -> AdapterConfig | None:
        """Adapter credentials for a team, used by webhooks before parsing."""
        flow_input = await self.find_flow_input(team_id, source_type)
        if flow_input is not None:
            return flow_input.adapter_config()
        legacy = await self.get_source_config(team_id, source_type)
        if legacy is not None and legacy.active:
            return legacy.adapter_config()
        return None


class ConfigurationService(BaseConfigurationService):
    """
    Configuration backed by MongoDB.

    Collections:
    - flows: Flow documents
    - flow_inputs: FlowInput documents
    - flow_outputs: FlowOutput documents
    - source_configs: legacy SourceConfig documents

    Caching:
    - Lookups cached for 5 minutes by default
    """

    def __init__(
        self,
        mongodb_url: str,
        database_name: str = "discubot",
        cache_ttl: int = 300,
    ):
        """
        Initialize configuration service.

        Args:
            mongodb_url: MongoDB connection URL
            database_name: Database name
            cache_ttl: Cache TTL in seconds
        """
        self._mongodb_url = mongodb_url
        self._database_name = database_name
        self._client = None
        self._db = None
        self._cache = TTLCache(ttl_seconds=cache_ttl)

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    async def connect(self) -> None:
        """Connect to MongoDB."""
        from motor.motor_asyncio import AsyncIOMotorClient

        self._client = AsyncIOMotorClient(self._mongodb_url)
        self._db = self._client[self._database_name]
        logger.info(f"[config] Connected to MongoDB database: {self._database_name}")

    async def close(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    async def _ensure_connected(self) -> None:
        if self._db is None:
            await self.connect()

    async def _find_one(self, collection: str, query: dict[str, Any], model: type[M]) -> M | None:
        cache_key = f"{collection}:{sorted(query.items())}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        await self._ensure_connected()
        doc = await self._db[collection].find_one(query)
        if doc is None:
            return None

        value = model(**_strip_id(doc))
        self._cache.set(cache_key, value)
        return value

    async def find_flow_input(self, team_id: str, source_type: SourceType) -> FlowInput | None:
        team_field = _TEAM_FIELDS[source_type]
        return await self._find_one(
            "flow_inputs",
            {
                "source_type": source_type.value,
                "active": True,
                f"source_metadata.{team_field}": team_id,
            },
            FlowInput,
        )

    async def get_flow(self, flow_id: str) -> Flow | None:
        return await self._find_one("flows", {"id": flow_id}, Flow)

    async def list_outputs(self, flow_id: str) -> list[FlowOutput]:
        cache_key = f"flow_outputs:{flow_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        await self._ensure_connected()
        outputs = []
        async for doc in self._db.flow_outputs.find({"flow_id": flow_id, "active": True}):
            outputs.append(FlowOutput(**_strip_id(doc)))

        self._cache.set(cache_key, outputs)
        return outputs

    async def get_source_config(self, team_id: str, source_type: SourceType) -> SourceConfig | None:
        return await self._find_one(
            "source_configs",
            {"team_id": team_id, "source_type": source_type.value, "active": True},
            SourceConfig,
        )

    def invalidate(self) -> None:
        """Drop cached lookups (after an operator edits configuration)."""
        self._cache.clear()


class InMemoryConfigurationService(BaseConfigurationService):
    """
    Configuration held in dictionaries.

    Example:
        config = InMemoryConfigurationService()
        config.add_flow(flow, inputs=[slack_input], outputs=[design, default])
    """

    def __init__(self) -> None:
        self.flows: dict[str, Flow] = {}
        self.inputs: list[FlowInput] = []
        self.outputs: list[FlowOutput] = []
        self.source_configs: list[SourceConfig] = []

    def add_flow(
        self,
        flow: Flow,
        *,
        inputs: list[FlowInput] | None = None,
        outputs: list[FlowOutput] | None = None,
    ) -> None:
        self.flows[flow.id] = flow
        self.inputs.extend(inputs or [])
        self.outputs.extend(outputs or [])

    def add_source_config(self, config: SourceConfig) -> None:
        self.source_configs.append(config)

    async def find_flow_input(self, team_id: str, source_type: SourceType) -> FlowInput | None:
        for flow_input in self.inputs:
            if (
                flow_input.active
                and flow_input.source_type == source_type
                and flow_input.matches_team(team_id)
            ):
                return flow_input
        return None

    async def get_flow(self, flow_id: str) -> Flow | None:
        return self.flows.get(flow_id)

    async def list_outputs(self, flow_id: str) -> list[FlowOutput]:
        return [o for o in self.outputs if o.flow_id == flow_id and o.active]

    async def get_source_config(self, team_id: str, source_type: SourceType) -> SourceConfig | None:
        for config in self.source_configs:
            if config.team_id == team_id and config.source_type == source_type and config.active:
                return config
        return None


def _strip_id(doc: dict[str, Any]) -> dict[str, Any]:
    data = dict(doc)
    data.pop("_id", None)
    return data


__all__ = [
    "BaseConfigurationService",
    "ConfigurationService",
    "InMemoryConfigurationService",
    "TTLCache",
]
