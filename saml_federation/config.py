"""
Deployment configuration for the proof of concept.

Every field can be overridden with a `POC_`-prefixed environment variable or
an entry in `.env`; unset or empty variables keep the proof-of-concept defaults.

Usage:
    from saml_federation.config import get_settings

    settings = get_settings()
    blueprint = build_blueprint(settings)
"""

import ipaddress
import re
from functools import lru_cache
from typing import Annotated, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from saml_federation.domain.exceptions import InvalidSettingsException

_STACK_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9-]{0,127}$")
_ACCOUNT_PATTERN = re.compile(r"^\d{12}$")
_REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d$")


class DeploymentSettings(BaseSettings):
    """Inputs of a single deployment unit."""

    model_config = SettingsConfigDict(
        env_prefix="POC_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    stack_name: str = Field(
        default="P1PoCCognitoTwoSamlProvidersStack",
        description="CloudFormation stack name",
    )
    account: str = Field(
        default="162174280605",
        description="AWS account the stack is bound to",
    )
    region: str = Field(
        default="us-east-1",
        description="AWS region the stack is bound to",
    )
    # Comma separated in the environment, e.g. POC_PROVIDER_NAMES=First,Second
    provider_names: Annotated[Tuple[str, ...], NoDecode] = Field(
        default=("First", "Second"),
        description="Ordered names of the SAML providers to federate",
    )
    ingress_cidr: str = Field(
        default="0.0.0.0/0",
        description="Source range allowed to reach the broker containers on any TCP port",
    )
    image_directory: Optional[str] = Field(
        default=None,
        description="Directory holding the broker image Dockerfile; the bundled image is used when unset",
    )
    outputs_file: str = Field(
        default="outputs.json",
        description="File written by `cdk deploy --outputs-file`, read by the verifier",
    )

    @field_validator("stack_name")
    @classmethod
    def _check_stack_name(cls, value: str) -> str:
        if not _STACK_NAME_PATTERN.match(value):
            raise ValueError(
                f"'{value}' must start with a letter and hold only letters, digits and hyphens"
            )
        return value

    @field_validator("account")
    @classmethod
    def _check_account(cls, value: str) -> str:
        if not _ACCOUNT_PATTERN.match(value):
            raise ValueError("account must be a 12 digit AWS account id")
        return value

    @field_validator("region")
    @classmethod
    def _check_region(cls, value: str) -> str:
        if not _REGION_PATTERN.match(value):
            raise ValueError(f"'{value}' is not an AWS region name")
        return value

    @field_validator("provider_names", mode="before")
    @classmethod
    def _split_provider_names(cls, value):
        if isinstance(value, str):
            return tuple(name.strip() for name in value.split(",") if name.strip())
        return value

    @field_validator("ingress_cidr")
    @classmethod
    def _check_cidr(cls, value: str) -> str:
        # Normalised so a bare address becomes a /32 range
        return str(ipaddress.IPv4Network(value, strict=False))


@lru_cache()
def get_settings() -> DeploymentSettings:
    """
    Get the deployment settings singleton.

    Call get_settings.cache_clear() to reload settings.

    Raises:
        InvalidSettingsException: If a configured value fails validation.
    """
    try:
        return DeploymentSettings()
    except ValidationError as e:
        raise InvalidSettingsException(f"Invalid deployment settings: {e}") from e
