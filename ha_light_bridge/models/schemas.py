from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


SUPPORTED_DOMAINS = ("light", "switch")

ToolName = Literal[
    "get_all_states",
    "get_entity_state",
    "control_entity",
    "control_multiple_entities",
]
LogLevel = Literal["debug", "info", "warning", "error"]


class BridgeConfig(BaseModel):
    ha_token: str = ""
    ha_url: str = ""
    entity_filter: list[str] = Field(default_factory=list, description="Whitelist regex patterns")
    entity_blacklist: list[str] = Field(default_factory=list, description="Blacklist exact ids or regex patterns")
    source: str = Field(default="env", description="Where the config was loaded from")

    @field_validator("ha_token", mode="before")
    @classmethod
    def _strip_token(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("ha_url", mode="before")
    @classmethod
    def _strip_url(cls, value: Any) -> Any:
        return value.strip().rstrip("/") if isinstance(value, str) else value

    @field_validator("entity_filter", "entity_blacklist", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def masked_token(self) -> str | None:
        token = self.ha_token
        if not token:
            return None
        if len(token) <= 8:
            return "*" * len(token)
        return f"{token[:4]}...{token[-4:]}"


class BridgeConfigView(BaseModel):
    ha_url: str
    ha_token_set: bool
    ha_token_preview: str | None = None
    entity_filter: list[str]
    entity_blacklist: list[str]
    source: str
    ha_timeout_sec: float
    ha_ws_timeout_sec: float


class HAArea(BaseModel):
    area_id: str
    name: str = ""
    picture: str | None = None
    aliases: list[str] = Field(default_factory=list)

    @field_validator("aliases", mode="before")
    @classmethod
    def _aliases_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class HADevice(BaseModel):
    id: str
    area_id: str | None = None
    name: str | None = None


class HAEntityRegistration(BaseModel):
    entity_id: str
    device_id: str | None = None
    area_id: str | None = None


class HAState(BaseModel):
    entity_id: str
    state: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)
    last_changed: str = ""
    last_updated: str = ""
    area: HAArea | None = None

    @field_validator("attributes", mode="before")
    @classmethod
    def _attributes_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def domain(self) -> str:
        return self.entity_id.split(".", 1)[0] if "." in self.entity_id else ""

    def attribute_str(self, name: str) -> str | None:
        value = self.attributes.get(name)
        if isinstance(value, str) and value:
            return value
        return None

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        if payload.get("area") is None:
            payload.pop("area", None)
        return payload


class ToolCallRequest(BaseModel):
    tool_name: str = Field(min_length=1, description="Tool name, e.g. control_entity")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    trace_id: str | None = Field(default=None, description="Optional trace id for logs")
    dry_run: bool = Field(default=False, description="Resolve control calls without invoking Home Assistant")

    model_config = {
        "json_schema_extra": {
            "example": {
                "tool_name": "control_entity",
                "arguments": {"entity_id": "light.living_room", "action": "on"},
                "trace_id": "req-001",
                "dry_run": False,
            }
        }
    }


class ToolCallResponse(BaseModel):
    success: bool = Field(description="Whether the tool call succeeded")
    message: str = Field(description="Result message")
    trace_id: str | None = Field(default=None, description="Trace id echoed from request")
    data: dict[str, Any] | None = Field(default=None, description="Execution details")


class ToolDefinition(BaseModel):
    tool_name: ToolName
    description: str
    arguments: dict[str, Any] = Field(default_factory=dict, description="JSON schema of the arguments")


class EntityStateArguments(BaseModel):
    entity_id: str = Field(min_length=1, description="The entity ID, e.g. light.living_room")


class ControlEntityArguments(BaseModel):
    entity_id: str = Field(min_length=1, description="The entity ID, e.g. light.living_room")
    action: str = Field(min_length=1, description="on, off, turn_on or turn_off")


class ControlMultipleEntitiesArguments(BaseModel):
    # Items are validated one by one so a bad item only fails itself.
    entities: list[Any] = Field(description="[{'entity_id': 'light.a', 'action': 'on'}, ...]")


class ControlRequest(BaseModel):
    entity_id: str = Field(min_length=1)
    action: str = Field(min_length=1)
    trace_id: str | None = None
    dry_run: bool = False


class BatchControlRequest(BaseModel):
    entities: list[Any] = Field(default_factory=list)
    trace_id: str | None = None
    dry_run: bool = False


class OperationLogItem(BaseModel):
    event_id: str
    created_at: str
    event_type: str
    source: str
    action: str
    level: LogLevel = "info"
    method: str | None = None
    path: str | None = None
    status_code: int | None = None
    duration_ms: float | None = None
    trace_id: str | None = None
    success: bool | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
