"""Pydantic schemas for request/response payloads."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class DecideRequest(BaseModel):
    username: str = Field(min_length=1)
    client_id: Optional[str] = None
    client_internal_id: Optional[str] = None
    brokered: bool = False
    execution_disabled: bool = False


class SubmitRequest(DecideRequest):
    form: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)


class CredentialRequest(BaseModel):
    username: str = Field(min_length=1)
    type: str = Field(min_length=1)


class RoleRequest(BaseModel):
    username: str = Field(min_length=1)
    role: str = Field(min_length=1)


class EnrollmentResponse(BaseModel):
    success: bool = True
    outcome: Optional[Literal["allow", "challenge", "fail"]] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    page: Optional[dict] = None
    session_tasks: List[str] = Field(default_factory=list)
