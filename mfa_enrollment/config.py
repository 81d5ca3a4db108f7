"""Process-wide settings for the enrollment engine."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LAST_PROMPT_ATTRIBUTE = "mfaEnrollment.lastPrompt"
DEFAULT_FIRST_LOGIN_ATTRIBUTE = "mfa.firstLoginCompleted"


class EnrollmentSettings(BaseSettings):
    """Runtime settings shared by every policy instance."""

    model_config = SettingsConfigDict(env_prefix="MFA_ENROLLMENT_", extra="ignore")

    last_prompt_attribute: str = Field(
        default=DEFAULT_LAST_PROMPT_ATTRIBUTE,
        description="User attribute holding the last prompt time in epoch milliseconds",
    )
    first_login_attribute: str = Field(
        default=DEFAULT_FIRST_LOGIN_ATTRIBUTE,
        description="User attribute flagging that the first-login check already ran",
    )
    custom_method_prefix: str = Field(
        default="custom:",
        description="Prefix that marks custom methods in configuration and credential types",
    )
    frame_options: str = Field(
        default="SAMEORIGIN",
        description="X-Frame-Options header attached to rendered pages",
    )
