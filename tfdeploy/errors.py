"""Error definitions for tfdeploy.

Every failure raised by the build and Terraform layers derives from
DeployError and carries a stable code. The CLI is the only place that turns
these into a process exit.
"""

# Error code constants
CONFIGURATION_ERROR = "configuration_error"
NOT_IMPLEMENTED = "not_implemented"
LAMBDA_DISCOVERY_ERROR = "lambda_discovery_error"
LAMBDA_BUILD_ERROR = "lambda_build_failed"
TERRAFORM_INSTALL_ERROR = "terraform_install_error"
TERRAFORM_SETUP_ERROR = "terraform_setup_error"
TERRAFORM_COMMAND_ERROR = "terraform_command_failed"
TERRAFORM_WORKFLOW_ERROR = "terraform_workflow_error"


class DeployError(Exception):
    """Base error for all deployment failures."""

    def __init__(self, message: str, code: str = "deploy_error") -> None:
        """Initialize DeployError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(DeployError):
    """Raised when the deployment configuration is invalid."""

    def __init__(self, message: str, code: str = CONFIGURATION_ERROR) -> None:
        super().__init__(message, code=code)


class OperationNotImplementedError(DeployError):
    """Raised for operations that are recognised but deliberately refused."""

    def __init__(self, operation: str, code: str = NOT_IMPLEMENTED) -> None:
        super().__init__(f"{operation.capitalize()} needs implementing!", code=code)
        self.operation = operation


__all__ = [
    "CONFIGURATION_ERROR",
    "LAMBDA_BUILD_ERROR",
    "LAMBDA_DISCOVERY_ERROR",
    "NOT_IMPLEMENTED",
    "TERRAFORM_COMMAND_ERROR",
    "TERRAFORM_INSTALL_ERROR",
    "TERRAFORM_SETUP_ERROR",
    "TERRAFORM_WORKFLOW_ERROR",
    "ConfigurationError",
    "DeployError",
    "OperationNotImplementedError",
]
