"""Terraform provisioning workflow.

This module maps a requested operation onto Terraform calls:
- init: configure the S3 backend for the environment/application state
- plan: dry run with the deployment variables and environment var file
- apply: same inputs as plan, then collect non-sensitive outputs
- destroy: refused

Terraform stdout for the whole session is captured in one buffer and logged
once when the operation finishes.
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TextIO

from tfdeploy.errors import (
    TERRAFORM_WORKFLOW_ERROR,
    DeployError,
    OperationNotImplementedError,
)
from tfdeploy.terraform.executor import Terraform
from tfdeploy.terraform.install import ensure_terraform
from tfdeploy.types import TerraformOperation, parse_operation

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tfdeploy.config import DeploymentConfig, Settings
    from tfdeploy.terraform.models import OutputSet

logger = logging.getLogger(__name__)

OUTPUTS_HEADER = "Terraform outputs:"


class TerraformWorkflowError(DeployError):
    """Raised when workflow preconditions are not met."""

    def __init__(self, message: str, code: str = TERRAFORM_WORKFLOW_ERROR) -> None:
        super().__init__(message, code=code)


class TerraformHandle(Protocol):
    """The subset of Terraform used by the workflow."""

    working_dir: Path

    def set_stdout(self, writer: TextIO | None) -> None: ...

    def init(
        self,
        backend_config: Mapping[str, str] | None = None,
        upgrade: bool = False,
    ) -> None: ...

    def plan(
        self,
        variables: Mapping[str, object] | None = None,
        var_file: str | None = None,
        refresh: bool = True,
    ) -> bool: ...

    def apply(
        self,
        variables: Mapping[str, object] | None = None,
        var_file: str | None = None,
        refresh: bool = True,
    ) -> None: ...

    def output(self) -> OutputSet: ...


@dataclass
class WorkflowResult:
    """Result of a dispatched Terraform operation.

    Attributes:
        operation: The operation that ran.
        plan_has_changes: For plan, whether changes are pending.
        outputs: For apply, the full output set (including sensitive entries;
            use render_outputs() before showing it).
        stdout: Terraform stdout captured during the operation.
    """

    operation: TerraformOperation
    plan_has_changes: bool | None = None
    outputs: OutputSet = field(default_factory=dict)
    stdout: str = ""


def state_key(environment: str, app_name: str) -> str:
    """Return the S3 object key of the Terraform state."""
    return f"tfstate/{environment}/{app_name}.json"


def var_file_for(environment: str) -> str:
    """Return the var file path for an environment, relative to the working dir."""
    return f"environments/{environment}.tfvars"


def backend_config(config: DeploymentConfig) -> dict[str, str]:
    """Compose backend configuration for `terraform init`."""
    return {
        "key": state_key(config.environment, config.app_name),
        "bucket": config.working_bucket,
        "region": config.region,
    }


def terraform_variables(config: DeploymentConfig) -> dict[str, str]:
    """Compose the -var inputs shared by plan and apply."""
    return {
        "terraform_working_bucket": config.working_bucket,
        "account_number": str(config.account_number),
        "environment": config.environment,
        "vpc_id": config.vpc_id,
    }


def ensure_supported(operation: TerraformOperation | str) -> TerraformOperation:
    """Reject operations that must not run.

    Raises:
        ConfigurationError: If the operation is not recognised.
        OperationNotImplementedError: For destroy.
    """
    op = parse_operation(operation)
    if op is TerraformOperation.DESTROY:
        raise OperationNotImplementedError(op.value)
    return op


def acquire_terraform(settings: Settings) -> Terraform:
    """Install the pinned Terraform and open a handle on the working directory.

    Raises:
        TerraformInstallError: If Terraform cannot be installed.
        TerraformSetupError: If the handle cannot be created.
    """
    exec_path = ensure_terraform(settings)
    return Terraform(settings.terraform_dir, exec_path)


def _require_var_file(working_dir: Path, var_file: str) -> None:
    if not (working_dir / var_file).is_file():
        raise TerraformWorkflowError(
            f"Variables file not found: {working_dir / var_file}"
        )


def terraform_init(tf: TerraformHandle, config: DeploymentConfig) -> None:
    logger.info("initialising Terraform...")
    tf.init(backend_config=backend_config(config), upgrade=True)


def terraform_plan(tf: TerraformHandle, config: DeploymentConfig) -> bool:
    logger.info("planning Terraform...")
    var_file = var_file_for(config.environment)
    _require_var_file(tf.working_dir, var_file)
    return tf.plan(
        variables=terraform_variables(config),
        var_file=var_file,
        refresh=True,
    )


def terraform_apply(tf: TerraformHandle, config: DeploymentConfig) -> OutputSet:
    logger.info("applying Terraform...")
    var_file = var_file_for(config.environment)
    _require_var_file(tf.working_dir, var_file)
    tf.apply(
        variables=terraform_variables(config),
        var_file=var_file,
        refresh=True,
    )
    return tf.output()


def run_terraform_operation(
    tf: TerraformHandle,
    config: DeploymentConfig,
) -> WorkflowResult:
    """Run the operation requested in config against a Terraform handle.

    Args:
        tf: Terraform handle.
        config: Deployment configuration.

    Returns:
        WorkflowResult for the operation.

    Raises:
        ConfigurationError: If the operation is not recognised.
        OperationNotImplementedError: For destroy, before any Terraform call.
        TerraformWorkflowError: If the var file is missing.
        TerraformCommandError: If a terraform command fails.
    """
    operation = ensure_supported(config.operation)

    buffer = io.StringIO()
    tf.set_stdout(buffer)
    result = WorkflowResult(operation=operation)

    try:
        if operation is TerraformOperation.INIT:
            terraform_init(tf, config)
        elif operation is TerraformOperation.PLAN:
            result.plan_has_changes = terraform_plan(tf, config)
        elif operation is TerraformOperation.APPLY:
            result.outputs = terraform_apply(tf, config)
    finally:
        result.stdout = buffer.getvalue()
        if result.stdout:
            logger.info("%s", result.stdout.rstrip())

    return result


def format_output_value(value: object) -> str:
    """Render an output value; strings print raw, everything else as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def render_outputs(outputs: OutputSet) -> list[str]:
    """Render the non-sensitive outputs for display.

    Returns:
        Header plus one ``key = value`` line per non-sensitive output, or no
        lines at all when there are no outputs.
    """
    if not outputs:
        return []

    lines = [OUTPUTS_HEADER]
    for key, meta in outputs.items():
        if meta.sensitive:
            continue
        lines.append(f"{key} = {format_output_value(meta.value)}")
    return lines


__all__ = [
    "OUTPUTS_HEADER",
    "TerraformHandle",
    "TerraformWorkflowError",
    "WorkflowResult",
    "acquire_terraform",
    "backend_config",
    "ensure_supported",
    "format_output_value",
    "render_outputs",
    "run_terraform_operation",
    "state_key",
    "terraform_apply",
    "terraform_init",
    "terraform_plan",
    "terraform_variables",
    "var_file_for",
]
