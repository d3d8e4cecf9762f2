"""Configuration settings for tfdeploy.

Uses pydantic-settings for workspace/tooling settings parsed from environment
variables and defaults. The per-run deployment target (account, environment,
region, operation, ...) comes from CLI flags and is captured once in an
immutable DeploymentConfig.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tfdeploy.types import BUILD_ALL, TerraformOperation


def _default_cache_dir() -> Path:
    """Return the default Terraform install cache directory."""
    return Path.home() / ".cache" / "tfdeploy" / "terraform"


def terraform_working_bucket(account_number: int, region: str) -> str:
    """Return the S3 bucket holding Terraform state for an account/region.

    Args:
        account_number: AWS account number.
        region: AWS region.

    Returns:
        Bucket name of the form ``{account}-{region}-terraform-deployments``.
    """
    return f"{account_number}-{region}-terraform-deployments"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the TFDEPLOY_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TFDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    lambdas_dir: Path = Field(
        default=Path("lambdas"),
        description="Root directory containing one subdirectory per Lambda",
    )
    terraform_dir: Path = Field(
        default=Path("terraform"),
        description="Terraform working directory",
    )
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for downloaded Terraform releases",
    )

    # Tools
    build_tool: str = Field(
        default="make",
        description="Build tool invoked in each Lambda directory",
    )
    releases_url: str = Field(
        default="https://releases.hashicorp.com",
        description="Base URL for Terraform release downloads",
    )

    # Operational modes
    offline: bool = Field(
        default=False,
        description="Offline mode - do not download Terraform",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=600,
        ge=10,
        description="Timeout for the Terraform release download",
    )


class DeploymentConfig(BaseModel):
    """Deployment target for a single run.

    Built once from CLI flags and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    operation: TerraformOperation
    account_number: int = Field(default=0, ge=0)
    environment: str = "nonprod"
    region: str = "us-east-1"
    app_name: str = "jwt-authorizer"
    build: str = BUILD_ALL
    vpc_id: str = ""

    @property
    def working_bucket(self) -> str:
        """S3 bucket for Terraform state and deployment artifacts."""
        return terraform_working_bucket(self.account_number, self.region)


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "DeploymentConfig",
    "Settings",
    "get_settings",
    "print_settings_json",
    "terraform_working_bucket",
]
