"""
Pydantic schemas for the control API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .. import DEFAULT_USERNAME, DeviceConfig


class DeviceConfigModel(BaseModel):
    host: str = ""
    username: str = DEFAULT_USERNAME
    password: str = ""
    verify_tls: bool = Field(default=False, alias="verifyTls")
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("host", mode="before")
    @classmethod
    def _strip_host(cls, value: object) -> str:
        return str(value or "").strip()

    def to_config(self, base: Optional[DeviceConfig] = None) -> DeviceConfig:
        timings = base.to_dict() if base is not None else {}
        timings.update(
            host=self.host,
            username=self.username,
            password=self.password,
            verify_tls=self.verify_tls,
        )
        return DeviceConfig.from_mapping(timings)


class StatusModel(BaseModel):
    status: str
    message: Optional[str] = None
    phase: str
    host: str


class OptionsRequest(BaseModel):
    options: Dict[str, Any] = Field(default_factory=dict)


class ActionResult(BaseModel):
    action: str
    accepted: bool


class FeedbackResult(BaseModel):
    feedback: str
    value: Any = None


class DefinitionList(BaseModel):
    items: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class VariableModel(BaseModel):
    variableId: str
    name: str
    value: str = ""


class VariableList(BaseModel):
    variables: List[VariableModel] = Field(default_factory=list)
