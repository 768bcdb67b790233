"""
Pydantic configuration models and the YAML config loader.

Validates the config file at load time instead of silently passing bad
values to provider clients. Credentials may reference environment variables
(``${CLOUDFLARE_API_TOKEN}``) and fall back to the conventional variables
when the ``default`` profile is not configured.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from cloudctl.base.exceptions import ConfigError
from cloudctl.base.retry import RetryPolicy

DEFAULT_CONFIG_PATH = Path.home() / ".cloudctl" / "config.yaml"


class CloudflareProfile(BaseModel):
    """Credentials for one Cloudflare account."""

    model_config = ConfigDict(extra="forbid")

    api_token: str = Field(default="", description="Cloudflare API token")

    @model_validator(mode="after")
    def expand_env(self) -> CloudflareProfile:
        self.api_token = os.path.expandvars(self.api_token)
        return self


class AWSProfile(BaseModel):
    """Credentials for one AWS account.

    CloudFront and ACM certificates used by CloudFront live in
    ``us-east-1``; ``region`` is kept for completeness.
    """

    model_config = ConfigDict(extra="forbid")

    access_key_id: str = Field(default="", description="AWS access key ID")
    secret_access_key: str = Field(default="", description="AWS secret access key")
    region: str = Field(default="us-east-1", description="AWS region")

    @model_validator(mode="after")
    def expand_env(self) -> AWSProfile:
        self.access_key_id = os.path.expandvars(self.access_key_id)
        self.secret_access_key = os.path.expandvars(self.secret_access_key)
        self.region = os.path.expandvars(self.region)
        return self


class DefaultProfile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cloudflare: str = "default"
    aws: str = "default"


class LogConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["debug", "info", "warning", "error"] = "error"
    format: Literal["text", "json"] = "text"
    output: str = "stderr"

    @field_validator("level", mode="before")
    @classmethod
    def accept_warn(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() == "warn":
            return "warning"
        return value


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    format: Literal["text", "json"] = "text"


class APIConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class Config(BaseModel):
    """Complete cloudctl configuration.

    Environment fallbacks, applied before validation:

    * ``CLOUDFLARE_API_TOKEN`` → ``cloudflare.default.api_token``
    * ``AWS_ACCESS_KEY_ID`` / ``AWS_SECRET_ACCESS_KEY`` / ``AWS_REGION`` →
      ``aws.default``
    * ``CLOUDCTL_LOG_LEVEL`` → ``log.level``
    * ``CLOUDCTL_OUTPUT_FORMAT`` → ``output.format``
    """

    model_config = ConfigDict(extra="forbid")

    default_profile: DefaultProfile = Field(default_factory=DefaultProfile)
    cloudflare: dict[str, CloudflareProfile] = Field(default_factory=dict)
    aws: dict[str, AWSProfile] = Field(default_factory=dict)
    log: LogConfig = Field(default_factory=LogConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: Any) -> Any:
        """Fill the ``default`` profiles and log/output settings from the environment."""
        if not isinstance(values, dict):
            return values
        values = dict(values)

        token = os.environ.get("CLOUDFLARE_API_TOKEN")
        cloudflare = dict(values.get("cloudflare") or {})
        if token and "default" not in cloudflare:
            cloudflare["default"] = {"api_token": token}
        values["cloudflare"] = cloudflare

        access_key = os.environ.get("AWS_ACCESS_KEY_ID")
        aws = dict(values.get("aws") or {})
        if access_key and "default" not in aws:
            aws["default"] = {
                "access_key_id": access_key,
                "secret_access_key": os.environ.get("AWS_SECRET_ACCESS_KEY", ""),
                "region": os.environ.get("AWS_REGION", "us-east-1"),
            }
        values["aws"] = aws

        env_map = {
            ("log", "level"): "CLOUDCTL_LOG_LEVEL",
            ("output", "format"): "CLOUDCTL_OUTPUT_FORMAT",
        }
        for (section, field), env_var in env_map.items():
            env_value = os.environ.get(env_var)
            if env_value:
                values[section] = {**(values.get(section) or {}), field: env_value.lower()}
        return values

    def cloudflare_profile(self, name: str | None = None) -> CloudflareProfile:
        """Return the named (or default) Cloudflare profile.

        Raises:
            ConfigError: If the profile is missing or has no API token.
        """
        name = name or self.default_profile.cloudflare
        profile = self.cloudflare.get(name)
        if profile is None:
            raise ConfigError(f"Cloudflare profile '{name}' does not exist")
        if not profile.api_token:
            raise ConfigError(f"Cloudflare profile '{name}' has no api_token")
        return profile

    def aws_profile(self, name: str | None = None) -> AWSProfile:
        """Return the named (or default) AWS profile.

        Raises:
            ConfigError: If the profile is missing or lacks credentials.
        """
        name = name or self.default_profile.aws
        profile = self.aws.get(name)
        if profile is None:
            raise ConfigError(f"AWS profile '{name}' does not exist")
        if not profile.access_key_id:
            raise ConfigError(f"AWS profile '{name}' is missing access_key_id")
        if not profile.secret_access_key:
            raise ConfigError(f"AWS profile '{name}' is missing secret_access_key")
        return profile

    def list_profiles(self) -> list[dict[str, Any]]:
        """Summarise every configured profile, Cloudflare first."""
        profiles = [
            {
                "provider": "cloudflare",
                "name": name,
                "default": name == self.default_profile.cloudflare,
                "has_credentials": bool(profile.api_token),
            }
            for name, profile in sorted(self.cloudflare.items())
        ]
        profiles += [
            {
                "provider": "aws",
                "name": name,
                "default": name == self.default_profile.aws,
                "has_credentials": bool(profile.access_key_id and profile.secret_access_key),
            }
            for name, profile in sorted(self.aws.items())
        ]
        return profiles

    def masked(self, profile: str | None = None) -> dict[str, Any]:
        """Dump the configuration with every credential masked.

        Args:
            profile: Restrict the profile sections to this name.
        """
        data = self.model_dump(mode="json")
        for section, secrets in (
            ("cloudflare", ("api_token",)),
            ("aws", ("access_key_id", "secret_access_key")),
        ):
            profiles = data[section]
            if profile is not None:
                profiles = {k: v for k, v in profiles.items() if k == profile}
            for values in profiles.values():
                for key in secrets:
                    values[key] = mask_secret(values[key])
            data[section] = profiles
        return data


def mask_secret(value: str) -> str:
    """Keep the first and last four characters of long secrets."""
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def load_config(path: str | Path | None = None) -> Config:
    """Load and validate the cloudctl config file.

    Args:
        path: Explicit config file. When omitted, ``~/.cloudctl/config.yaml``
            is used if it exists, otherwise defaults (plus environment
            fallbacks) are returned.

    Returns:
        A validated :class:`Config`.

    Raises:
        ConfigError: If the file is missing (explicit path only), is not
            valid YAML, or fails validation.
    """
    if path is None:
        config_path = DEFAULT_CONFIG_PATH
        if not config_path.exists():
            return _validate({}, "<defaults>")
    else:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return _validate(raw, str(config_path))


def _validate(raw: dict[str, Any], source: str) -> Config:
    try:
        return Config(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {source}: {e}") from e


__all__ = [
    "APIConfig",
    "AWSProfile",
    "CloudflareProfile",
    "Config",
    "DefaultProfile",
    "LogConfig",
    "OutputConfig",
    "load_config",
    "mask_secret",
]
