"""Pydantic based configuration for the reference enrollment host."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field

from mfa_enrollment.catalog import BUILTIN_METHODS

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_DB_PATH = DATA_DIR / "enrollment.db"


class ServerSettings(BaseModel):
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DB_PATH}",
        description="SQLAlchemy connection string used by the host",
    )
    realm: str = Field(default="master", description="Realm every login is evaluated in")
    realm_roles: List[str] = Field(
        default_factory=list,
        description="Roles defined in the realm; other role names never match",
    )
    registered_tasks: List[str] = Field(
        default_factory=lambda: [task for m in BUILTIN_METHODS for task in m.follow_up_tasks],
        description="Follow-up task ids the host knows how to run",
    )
    policy: Dict[str, str] = Field(
        default_factory=dict,
        description="Raw enrollment policy properties",
    )
