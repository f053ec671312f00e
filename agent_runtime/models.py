"""Pydantic models for agents, their tool configs and scheduling records.

Configuration records are validated when they are loaded into the store,
so a malformed tool config is rejected up front instead of failing halfway
through a chat request.
"""

from __future__ import annotations

from datetime import UTC, datetime, time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Visibility = Literal["private", "friends", "public"]
Role = Literal["user", "assistant"]
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


def utcnow() -> datetime:
    return datetime.now(UTC)


# ── Tool servers (discovery protocol) ────────────────────────────────


class McpServerConfig(BaseModel):
    """A tool server the agent may consult through ``tools/list`` / ``tools/call``."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    description: str | None = None
    instructions: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    api_key: str | None = None


class ToolParameter(BaseModel):
    model_config = ConfigDict(extra="allow")

    # JSON Schema allows a union such as ["string", "null"]
    type: str | list[str] = "string"
    description: str | None = None

    @property
    def type_label(self) -> str:
        if isinstance(self.type, list):
            return " | ".join(self.type) or "any"
        return self.type


class ToolInputSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "object"
    properties: dict[str, ToolParameter] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ToolDescriptor(BaseModel):
    """A tool advertised by a tool server.  Cached, never persisted."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    description: str | None = None
    input_schema: ToolInputSchema | None = Field(default=None, alias="inputSchema")


# ── Generic HTTP tools ───────────────────────────────────────────────


class ApiToolBase(BaseModel):
    kind: Literal["generic", "graphql", "openapi"] = "generic"
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    method: HttpMethod = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    api_key: str | None = None
    description: str | None = None
    instructions: str | None = None
    schema_text: str | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @property
    def metadata_text(self) -> str:
        """Name, description and instructions joined, lower-cased."""
        return " ".join(
            [self.name or "", self.description or "", self.instructions or ""]
        ).lower()


class GenericApiTool(ApiToolBase):
    kind: Literal["generic"] = "generic"


class GraphQLApiTool(ApiToolBase):
    kind: Literal["graphql"]


class OpenApiTool(ApiToolBase):
    kind: Literal["openapi"]


ApiToolConfig = Annotated[
    Union[GenericApiTool, GraphQLApiTool, OpenApiTool],
    Field(discriminator="kind"),
]


# ── Agent ────────────────────────────────────────────────────────────


class Agent(BaseModel):
    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    avatar_emoji: str | None = None
    visibility: Visibility = "private"
    system_instructions: str | None = None

    # Capability toggles: enabled unless explicitly disabled, except
    # scheduling which must be switched on by the owner.
    use_knowledge_base: bool = True
    mcp_enabled: bool = True
    api_enabled: bool = True
    web_search_enabled: bool = True
    scheduling_enabled: bool = False

    mcp_servers: list[McpServerConfig] = Field(default_factory=list)
    api_tools: list[ApiToolConfig] = Field(default_factory=list)
    message_count: int = 0

    @field_validator("owner_id", mode="before")
    @classmethod
    def _normalise_owner(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("api_tools", mode="before")
    @classmethod
    def _default_tool_kind(cls, value: Any) -> Any:
        """Tag untagged tool configs as ``generic`` before discrimination."""
        if not isinstance(value, list):
            return value
        tagged = []
        for item in value:
            if isinstance(item, dict) and "kind" not in item:
                item = {**item, "kind": "generic"}
            tagged.append(item)
        return tagged

    def can_be_read_by(self, caller_id: str) -> bool:
        """Private agents are visible to their owner only."""
        return self.visibility != "private" or self.owner_id == caller_id.lower()


# ── Conversation log ─────────────────────────────────────────────────


class ConversationTurn(BaseModel):
    agent_id: str
    caller_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utcnow)


# ── Scheduling ───────────────────────────────────────────────────────


class AvailabilityWindow(BaseModel):
    """A recurring weekly window.  ``day_of_week`` is 0 = Sunday … 6 = Saturday."""

    owner_id: str
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    timezone: str = "UTC"
    is_active: bool = True


class SchedulingSettings(BaseModel):
    owner_id: str
    scheduling_enabled: bool = False
    free_enabled: bool = True
    paid_enabled: bool = False
    free_duration_minutes: int | None = None
    paid_duration_minutes: int | None = None
    price_cents: int = 0
    buffer_minutes: int = 15
    advance_notice_hours: int = 24
    wallet_address: str | None = None


class CalendarConnection(BaseModel):
    owner_id: str
    provider: Literal["google"] = "google"
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    calendar_id: str = "primary"
    is_active: bool = True


class BusyPeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class Slot(BaseModel):
    """A candidate bookable interval in UTC.  Derived per request."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


# ── Knowledge ────────────────────────────────────────────────────────


class KnowledgeItem(BaseModel):
    agent_id: str
    url: str
    title: str = ""
    status: Literal["pending", "indexed", "failed"] = "pending"


class SeedData(BaseModel):
    """Shape of the JSON document that seeds :class:`InMemoryStore`."""

    agents: list[Agent] = Field(default_factory=list)
    availability_windows: list[AvailabilityWindow] = Field(default_factory=list)
    scheduling_settings: list[SchedulingSettings] = Field(default_factory=list)
    calendar_connections: list[CalendarConnection] = Field(default_factory=list)
    knowledge_items: list[KnowledgeItem] = Field(default_factory=list)
