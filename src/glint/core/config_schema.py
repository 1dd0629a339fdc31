"""Configuration schema: Pydantic models for glint.json files."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class LSPConfig(BaseModel):
    """Language server connection settings."""
    command: Optional[List[str]] = None
    socket: Optional[str] = None
    language_id: Optional[str] = Field(None, alias="languageId")
    settle_delay_ms: int = Field(300, alias="settleDelayMs", ge=0)
    disable_warning: bool = Field(False, alias="disableWarning")
    disable_error: bool = Field(False, alias="disableError")
    env: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator("socket")
    @classmethod
    def _check_socket(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError("socket must be in host:port form")
        return value

    @model_validator(mode="after")
    def _one_endpoint(self) -> "LSPConfig":
        if self.command and self.socket:
            raise ValueError("configure either 'command' or 'socket', not both")
        return self

    @property
    def settle_delay(self) -> float:
        return self.settle_delay_ms / 1000

    def socket_address(self) -> tuple[str, int]:
        if not self.socket:
            raise ValueError("no socket configured")
        host, _, port = self.socket.rpartition(":")
        return host, int(port)


class HighlightConfig(BaseModel):
    """Syntax highlight cache settings."""
    theme: str = "monokai"
    batch_threshold: int = Field(50, alias="batchThreshold", ge=1)
    worker: Literal["process", "thread"] = "process"

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: Optional[str] = None
    format: Optional[Literal["kv", "json", "pretty"]] = None
    console: Optional[bool] = None
    file: Optional[bool] = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class Config(BaseModel):
    """Root configuration."""
    lsp: LSPConfig = Field(default_factory=LSPConfig)
    highlight: HighlightConfig = Field(default_factory=HighlightConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)
