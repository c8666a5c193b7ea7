"""
Configuration Schemas for Discubot.

Pydantic models for the tenant configuration stored in MongoDB:

- Flow: a tenant pipeline (AI settings + domain vocabulary)
- FlowInput: one source attached to a flow (credentials, workspace ids)
- FlowOutput: one destination attached to a flow (domain filter, default flag)
- SourceConfig: legacy single-source/single-output configuration

Configuration is read-only to the processing core.

Security:
    Sensitive fields use SecretStr to prevent accidental logging
    of credentials. Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from discubot.models import SourceType


def _utc_now() -> datetime:
    """Get current UTC time with timezone awareness."""
    return datetime.now(UTC)


def _secret(value: SecretStr | None) -> str:
    return value.get_secret_value() if value is not None else ""


# =============================================================================
# Adapter configuration
# =============================================================================


class AdapterConfig(BaseModel):
    """
    What a source adapter needs to talk to its source.

    Built from either a FlowInput or a legacy SourceConfig.
    """

    model_config = ConfigDict(extra="ignore")

    source_type: SourceType
    api_token: SecretStr = Field(default=SecretStr(""), description="Source API token")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def token(self) -> str:
        return _secret(self.api_token)


# =============================================================================
# Flows
# =============================================================================


class FieldMapping(BaseModel):
    """Maps one AI field (priority, type, assignee, ...) to a Notion property."""

    model_config = ConfigDict(extra="ignore")

    notion_property: str = Field(..., description="Target Notion property name")
    property_type: str = Field("rich_text", description="Notion property type")
    value_map: dict[str, str] = Field(default_factory=dict, description="AI value -> Notion value")


class NotionOutputConfig(BaseModel):
    """Credentials and mapping for a Notion destination database."""

    model_config = ConfigDict(extra="allow")

    notion_token: SecretStr = Field(..., description="Notion integration token")
    database_id: str = Field(..., description="Target database ID")
    field_mapping: dict[str, FieldMapping] = Field(default_factory=dict)

    @property
    def token(self) -> str:
        return _secret(self.notion_token)


class Flow(BaseModel):
    """
    A tenant's configured pipeline.

    Stored in MongoDB 'flows' collection.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Flow identifier")
    team_id: str = Field(..., description="Owning team")
    name: str = Field("", description="Human-readable name")
    available_domains: list[str] = Field(default_factory=list, description="Domain vocabulary")
    ai_enabled: bool = True
    anthropic_api_key: SecretStr | None = Field(None, description="Per-flow model API key")
    ai_summary_prompt: str | None = None
    ai_task_prompt: str | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class InputSourceMetadata(BaseModel):
    """Source-specific identifiers used to match inbound events to an input."""

    model_config = ConfigDict(extra="allow")

    slack_team_id: str | None = None
    notion_workspace_id: str | None = None
    trigger_keyword: str | None = None
    email_slug: str | None = None


class FlowInput(BaseModel):
    """
    A source attached to a flow.

    Stored in MongoDB 'flow_inputs' collection.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    flow_id: str
    source_type: SourceType
    name: str = ""
    api_token: SecretStr = Field(default=SecretStr(""), description="Source API token")
    source_metadata: InputSourceMetadata = Field(default_factory=InputSourceMetadata)
    active: bool = True

    def workspace_key(self) -> str | None:
        """Workspace identifier of this input's source kind."""
        meta = self.source_metadata
        candidates = {
            SourceType.SLACK: meta.slack_team_id,
            SourceType.NOTION: meta.notion_workspace_id,
            SourceType.FIGMA: meta.email_slug,
        }
        return candidates.get(self.source_type)

    def matches_team(self, team_id: str) -> bool:
        """Whether an inbound event's team/workspace id belongs to this input."""
        expected = self.workspace_key()
        return bool(expected) and expected == team_id

    def adapter_config(self) -> AdapterConfig:
        meta = self.source_metadata.model_dump(exclude_none=True)
        team_id = self.workspace_key()
        if team_id and self.source_type != SourceType.FIGMA:
            meta.setdefault("workspace_id", team_id)
        return AdapterConfig(
            source_type=self.source_type,
            api_token=self.api_token,
            metadata=meta,
        )


class FlowOutput(BaseModel):
    """
    A destination attached to a flow.

    An empty domain_filter never matches a domain; such an output only
    receives tasks when it is the default. Exactly one active output per
    flow must be the default.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    flow_id: str = ""
    name: str = ""
    output_type: str = Field("notion", description="Destination kind")
    domain_filter: list[str] = Field(default_factory=list)
    is_default: bool = False
    output_config: NotionOutputConfig
    active: bool = True

    @field_validator("domain_filter")
    @classmethod
    def _normalize_filter(cls, value: list[str]) -> list[str]:
        return [d.strip().lower() for d in value if d and d.strip()]

    def accepts(self, domain: str) -> bool:
        return domain.strip().lower() in self.domain_filter


class SourceConfig(BaseModel):
    """
    Legacy single-source configuration.

    Stored in MongoDB 'source_configs' collection. Used when no flow
    matches an inbound discussion; collapses to one default output.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    team_id: str
    source_type: SourceType
    name: str = ""
    api_token: SecretStr = Field(default=SecretStr(""))
    notion_token: SecretStr = Field(default=SecretStr(""))
    notion_database_id: str = ""
    notion_field_mapping: dict[str, FieldMapping] = Field(default_factory=dict)
    ai_enabled: bool = True
    ai_summary_prompt: str | None = None
    ai_task_prompt: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    active: bool = True

    def adapter_config(self) -> AdapterConfig:
        return AdapterConfig(
            source_type=self.source_type,
            api_token=self.api_token,
            metadata={"workspace_id": self.team_id, **self.settings},
        )

    def as_output(self) -> FlowOutput:
        """The single default output implied by a legacy config."""
        return FlowOutput(
            id=f"legacy:{self.id}",
            name=self.name or "Notion",
            is_default=True,
            output_config=NotionOutputConfig(
                notion_token=self.notion_token,
                database_id=self.notion_database_id,
                field_mapping=self.notion_field_mapping,
            ),
        )


@dataclass
class ResolvedConfig:
    """
    Configuration resolved for one inbound discussion.

    Produced by the configuration service from either a flow (inputs +
    outputs) or a legacy source config.
    """

    config_id: str
    adapter_config: AdapterConfig
    outputs: list[FlowOutput]
    domains: list[str] = field(default_factory=list)
    ai_enabled: bool = True
    ai_summary_prompt: str | None = None
    ai_task_prompt: str | None = None
    anthropic_api_key: str | None = None
    legacy: bool = False

    @property
    def active_outputs(self) -> list[FlowOutput]:
        return [o for o in self.outputs if o.active]

    @classmethod
    def from_flow(cls, flow: Flow, flow_input: FlowInput, outputs: list[FlowOutput]) -> ResolvedConfig:
        return cls(
            config_id=flow.id,
            adapter_config=flow_input.adapter_config(),
            outputs=outputs,
            domains=list(flow.available_domains),
            ai_enabled=flow.ai_enabled,
            ai_summary_prompt=flow.ai_summary_prompt,
            ai_task_prompt=flow.ai_task_prompt,
            anthropic_api_key=_secret(flow.anthropic_api_key) or None,
        )

    @classmethod
    def from_source_config(cls, config: SourceConfig) -> ResolvedConfig:
        return cls(
            config_id=config.id,
            adapter_config=config.adapter_config(),
            outputs=[config.as_output()],
            ai_enabled=config.ai_enabled,
            ai_summary_prompt=config.ai_summary_prompt,
            ai_task_prompt=config.ai_task_prompt,
            legacy=True,
        )


# =============================================================================
# Application settings
# =============================================================================


class AppSettings(BaseModel):
    """
    Application settings model.

    Loaded from DISCUBOT_* environment variables by
    ``discubot.app.dependencies.get_settings``.

    Security:
        API keys and tokens use SecretStr to prevent accidental logging.
    """

    # Service identity
    service_name: str = "discubot"
    environment: str = "development"
    debug: bool = False

    # Storage: "memory" or "mongodb"
    storage: str = "memory"
    mongodb_url: SecretStr = Field(default=SecretStr("mongodb://localhost:27017"))
    mongodb_database: str = "discubot"

    # Language model
    llm_provider: str = "anthropic"
    llm_model: str | None = None
    anthropic_api_key: SecretStr | None = None
    openai_api_key: SecretStr | None = None

    # Inbound verification
    slack_signing_secret: SecretStr | None = None

    # Processing
    inflight_ttl_seconds: int = Field(900, ge=1, description="Stale in-flight marker age")
    analysis_cache_ttl_seconds: int = Field(3600, ge=0)
    analysis_cache_size: int = Field(1024, ge=0, description="Most analyses cached at once")
    notion_min_interval: float = Field(0.2, gt=0, description="Seconds between Notion calls per token")
    trigger_keyword: str = "@discubot"


__all__ = [
    "AdapterConfig",
    "AppSettings",
    "FieldMapping",
    "Flow",
    "FlowInput",
    "FlowOutput",
    "InputSourceMetadata",
    "NotionOutputConfig",
    "ResolvedConfig",
    "SourceConfig",
]
