"""Terraform provisioning module.

This module handles:
- Installing the pinned Terraform release into the cache directory
- Running init/plan/apply/output in the Terraform working directory
- Assembling backend and variable configuration from a DeploymentConfig
- Rendering non-sensitive outputs after apply
"""

from tfdeploy.terraform.executor import (
    Terraform,
    TerraformCommandError,
    TerraformSetupError,
)
from tfdeploy.terraform.install import (
    TERRAFORM_VERSION,
    DownloadError,
    ExtractionError,
    OfflineModeError,
    TerraformInstallError,
    VerificationError,
    ensure_terraform,
)
from tfdeploy.terraform.models import OutputMeta, OutputSet
from tfdeploy.terraform.workflow import (
    TerraformHandle,
    TerraformWorkflowError,
    WorkflowResult,
    acquire_terraform,
    render_outputs,
    run_terraform_operation,
)

__all__ = [
    "TERRAFORM_VERSION",
    # Install
    "DownloadError",
    "ExtractionError",
    "OfflineModeError",
    "TerraformInstallError",
    "VerificationError",
    "ensure_terraform",
    # Executor
    "Terraform",
    "TerraformCommandError",
    "TerraformSetupError",
    # Models
    "OutputMeta",
    "OutputSet",
    # Workflow
    "TerraformHandle",
    "TerraformWorkflowError",
    "WorkflowResult",
    "acquire_terraform",
    "render_outputs",
    "run_terraform_operation",
]
