"""Deployment orchestration.

run_deployment() is the main entry point: it refuses unsupported operations,
builds Lambdas when the operation needs them, then runs the Terraform
operation. Every step raises on failure and nothing after it runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from tfdeploy.config import get_settings
from tfdeploy.lambdas.service import (
    LambdaBuilder,
    MakeBuilder,
    build_lambdas,
    should_build_lambdas,
)
from tfdeploy.terraform.workflow import (
    TerraformHandle,
    WorkflowResult,
    acquire_terraform,
    ensure_supported,
    run_terraform_operation,
)

if TYPE_CHECKING:
    from tfdeploy.config import DeploymentConfig, Settings

logger = logging.getLogger(__name__)


def run_deployment(
    config: DeploymentConfig,
    settings: Settings | None = None,
    builder: LambdaBuilder | None = None,
    terraform_factory: Callable[[Settings], TerraformHandle] | None = None,
) -> WorkflowResult:
    """Build Lambdas (if needed) and run the requested Terraform operation.

    Args:
        config: Deployment configuration.
        settings: Application settings (uses defaults if not provided).
        builder: Lambda builder (defaults to MakeBuilder over settings.lambdas_dir).
        terraform_factory: Creates the Terraform handle (defaults to
            acquire_terraform, which installs the pinned release).

    Returns:
        WorkflowResult of the Terraform operation.

    Raises:
        DeployError: On the first failure of any step.
    """
    if settings is None:
        settings = get_settings()

    # Refuse before anything touches the workspace or downloads Terraform
    ensure_supported(config.operation)

    if should_build_lambdas(config.operation, config.build):
        if builder is None:
            builder = MakeBuilder(settings.lambdas_dir, build_tool=settings.build_tool)
        built = build_lambdas(builder, settings.lambdas_dir, config.build)
        logger.info("Built %d Lambda(s)", len(built))

    factory = terraform_factory or acquire_terraform
    tf = factory(settings)
    return run_terraform_operation(tf, config)


__all__ = ["run_deployment"]
