from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    error_code = "bridge_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_error_detail(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
        }


class ConfigError(BridgeError):
    """Fatal startup configuration problem: missing credential, URL or config file."""

    error_code = "invalid_config"


class TransportError(BridgeError):
    error_code = "hub_unreachable"


class AuthenticationError(BridgeError):
    error_code = "hub_auth_failed"


class ProtocolError(BridgeError):
    error_code = "hub_protocol_error"


class UserInputError(BridgeError):
    error_code = "invalid_request"


class NotFoundError(BridgeError):
    error_code = "entity_not_found"

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"entity {entity_id} not found")

    def to_error_detail(self) -> dict[str, Any]:
        detail = super().to_error_detail()
        detail["entity_id"] = self.entity_id
        return detail


class RegistryUnavailableError(BridgeError):
    error_code = "registry_unavailable"

    def __init__(self, registry: str, attempts: list[str]) -> None:
        self.registry = registry
        self.attempts = attempts
        super().__init__(f"{registry} registry unavailable: {'; '.join(attempts) or 'no sources'}")


class EntityControlError(BridgeError):
    error_code = "control_failed"

    def __init__(
        self,
        *,
        entity_id: str,
        action: str,
        duration_ms: float,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.action = action
        self.duration_ms = duration_ms
        self.status_code = status_code
        super().__init__(reason)

    def to_error_detail(self) -> dict[str, Any]:
        detail = super().to_error_detail()
        detail.update(
            {
                "entity_id": self.entity_id,
                "action": self.action,
                "status_code": self.status_code,
                "duration_ms": self.duration_ms,
            }
        )
        return detail
