# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pydantic models for the pymqtls SDK.

Provides validated, immutable models for connection targets, session options
and the results of messaging operations.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QoS(IntEnum):
    """MQTT quality of service levels."""
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2


class ProtocolVersion(str, Enum):
    """MQTT protocol versions supported by the client."""
    MQTT_3_1_1 = "3.1.1"
    MQTT_5 = "5"


# ============================================================================
# Configuration Models
# ============================================================================


class ConnectionTarget(BaseModel):
    """
    The logical endpoint of a connection.

    The client id must be unique per concurrent session on the same broker.
    Brokers often expect it to match the client certificate's common name;
    that is left to the caller.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    client_id: str = Field(min_length=1)

    @field_validator("host", "client_id")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    def __str__(self) -> str:
        return f"{self.client_id}@{self.host}:{self.port}"


class SessionOptions(BaseModel):
    """Messaging session options for MQTTClient."""

    model_config = ConfigDict(frozen=True)

    protocol: ProtocolVersion = ProtocolVersion.MQTT_3_1_1
    keepalive: int = Field(default=60, ge=1, le=65535, description="Keepalive in seconds")
    clean_session: bool = True
    connect_timeout_ms: int = Field(default=10000, ge=100, le=300000)
    ack_timeout_ms: int = Field(default=10000, ge=100, le=300000)


# ============================================================================
# Result Models
# ============================================================================


class ConnectResult(BaseModel):
    """Outcome of a CONNECT handshake."""

    model_config = ConfigDict(frozen=True)

    result_code: int
    reason: str = ""
    session_present: bool = False

    @property
    def success(self) -> bool:
        return self.result_code == 0


class PublishResult(BaseModel):
    """Outcome of a publish operation."""

    model_config = ConfigDict(frozen=True)

    topic: str
    message_id: int
    reason_code: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.reason_code == 0


class SubscribeResult(BaseModel):
    """Outcome of a subscribe operation, one reason code per topic filter."""

    model_config = ConfigDict(frozen=True)

    message_id: int
    result_codes: dict[str, int] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        # granted QoS 0-2 are successes, 0x80 and above are failures
        return all(code < 0x80 for code in self.result_codes.values())


class ReceivedMessage(BaseModel):
    """A message delivered on a subscribed topic."""

    model_config = ConfigDict(frozen=True)

    topic: str
    payload: bytes
    qos: QoS = QoS.AT_MOST_ONCE
    retain: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)

    def decode(self, encoding: str = "utf-8") -> str:
        """Decode payload as string."""
        return self.payload.decode(encoding)

    def json_data(self) -> Any:
        """Parse payload as JSON."""
        import json
        return json.loads(self.payload)
