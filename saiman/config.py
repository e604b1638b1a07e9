"""Application settings loaded from the environment and ~/.saiman/.env."""

from functools import cached_property
from pathlib import Path

from botocore.exceptions import BotoCoreError
from botocore.session import Session as BotocoreSession
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from saiman.prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt
from saiman.utils.logging import get_logger

logger = get_logger(__name__)

SAIMAN_HOME = Path.home() / ".saiman"

DEFAULT_REGION = "us-east-1"


def resolve_aws_credentials(profile: str | None = None) -> dict[str, str]:
    """Key id, secret and session token from botocore's credential chain.

    Honours ``AWS_PROFILE``, the shared credentials and config files, SSO and
    ``credential_process`` profiles. Returns an empty dict when nothing resolves.
    """
    try:
        credentials = BotocoreSession(profile=profile).get_credentials()
    except BotoCoreError as e:
        logger.warning(f"Could not resolve AWS credentials: {e}")
        return {}
    if credentials is None:
        return {}

    frozen = credentials.get_frozen_credentials()
    values = {
        "aws_access_key_id": frozen.access_key,
        "aws_secret_access_key": frozen.secret_key,
        "aws_session_token": frozen.token,
    }
    return {key: value for key, value in values.items() if value}


def resolve_aws_region(profile: str | None = None) -> str | None:
    """Region of the active AWS profile, if one is configured."""
    try:
        return BotocoreSession(profile=profile).get_config_variable("region")
    except BotoCoreError as e:
        logger.warning(f"Could not resolve AWS region: {e}")
        return None


class Settings(BaseSettings):
    """Credentials, model identifiers and runtime limits."""

    model_config = SettingsConfigDict(
        env_file=(SAIMAN_HOME / ".env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # AWS Bedrock
    aws_access_key_id: str = Field(default="", validation_alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", validation_alias="AWS_SECRET_ACCESS_KEY")
    aws_session_token: str | None = Field(default=None, validation_alias="AWS_SESSION_TOKEN")
    aws_region: str = Field(default="", validation_alias=AliasChoices("AWS_REGION", "AWS_DEFAULT_REGION"))

    bedrock_model_id: str = Field(
        default="us.anthropic.claude-opus-4-5-20251101-v1:0",
        validation_alias="SAIMAN_BEDROCK_MODEL",
    )
    bedrock_haiku_model_id: str = Field(
        default="us.anthropic.claude-haiku-4-5-20251001-v1:0",
        validation_alias="SAIMAN_BEDROCK_HAIKU_MODEL",
    )

    # Exa
    exa_api_key: str = Field(default="", validation_alias="EXA_API_KEY")

    # App
    stale_timeout_minutes: int = Field(default=15, validation_alias="SAIMAN_STALE_TIMEOUT_MINUTES")
    max_tool_calls: int = Field(default=10, ge=1, validation_alias="SAIMAN_MAX_TOOL_CALLS")
    data_dir: Path = Field(default=SAIMAN_HOME, validation_alias="SAIMAN_DATA_DIR")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    user_location: str = Field(default="Unknown", validation_alias="SAIMAN_USER_LOCATION")
    system_prompt_path: Path | None = Field(default=None, validation_alias="SAIMAN_SYSTEM_PROMPT")

    # Local API
    api_host: str = Field(default="127.0.0.1", validation_alias="SAIMAN_API_HOST")
    api_port: int = Field(default=8765, validation_alias="SAIMAN_API_PORT")
    cors_origins: list[str] = Field(default_factory=list, validation_alias="SAIMAN_CORS_ORIGINS")

    # Fall back to the AWS credential chain for anything the environment left empty
    use_aws_profile: bool = Field(default=True, exclude=True)

    @field_validator("data_dir", "system_prompt_path")
    @classmethod
    def _expand_user(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @model_validator(mode="after")
    def _fill_from_aws_profile(self) -> "Settings":
        if self.use_aws_profile:
            profile_credentials = resolve_aws_credentials()
            if not self.aws_access_key_id:
                self.aws_access_key_id = profile_credentials.get("aws_access_key_id", "")
            if not self.aws_secret_access_key:
                self.aws_secret_access_key = profile_credentials.get("aws_secret_access_key", "")
            if self.aws_session_token is None:
                self.aws_session_token = profile_credentials.get("aws_session_token")
            if not self.aws_region:
                self.aws_region = resolve_aws_region() or ""

        if not self.aws_region:
            self.aws_region = DEFAULT_REGION
        return self

    @property
    def database_path(self) -> Path:
        return self.data_dir / "saiman.db"

    @property
    def attachments_dir(self) -> Path:
        return self.data_dir / "attachments"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def usage_path(self) -> Path:
        return self.data_dir / "usage.json"

    @cached_property
    def base_system_prompt(self) -> str:
        """Base prompt text; a configured file overrides the built-in prompt."""
        if self.system_prompt_path is not None:
            try:
                return self.system_prompt_path.read_text(encoding="utf-8").strip()
            except OSError as e:
                logger.error(f"Could not read system prompt at {self.system_prompt_path}: {e}")
        return DEFAULT_SYSTEM_PROMPT

    @property
    def system_prompt(self) -> str:
        """System prompt with the per-call context header."""
        return build_system_prompt(self.base_system_prompt, location=self.user_location)

    @property
    def missing_configuration(self) -> list[str]:
        missing: list[str] = []
        if not self.aws_access_key_id:
            missing.append("AWS_ACCESS_KEY_ID (or an AWS profile)")
        if not self.aws_secret_access_key:
            missing.append("AWS_SECRET_ACCESS_KEY (or an AWS profile)")
        if not self.exa_api_key:
            missing.append("EXA_API_KEY")
        return missing

    @property
    def is_configured(self) -> bool:
        return not self.missing_configuration
