"""Terraform command execution.

Terraform wraps a terraform binary bound to one working directory and runs
init/plan/apply/output as blocking subprocess calls. Human-readable stdout of
each command is copied to the writer set with set_stdout().
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from tfdeploy.errors import (
    TERRAFORM_COMMAND_ERROR,
    TERRAFORM_SETUP_ERROR,
    DeployError,
)
from tfdeploy.terraform.models import OutputSet, output_set_adapter

logger = logging.getLogger(__name__)

# `terraform plan -detailed-exitcode` exits 2 when changes are pending
PLAN_CHANGES_EXIT_CODE = 2


class TerraformSetupError(DeployError):
    """Raised when a Terraform handle cannot be created."""

    def __init__(self, message: str, code: str = TERRAFORM_SETUP_ERROR) -> None:
        super().__init__(message, code=code)


class TerraformCommandError(DeployError):
    """Raised when a terraform command fails."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_code: int | None = None,
        stderr: str = "",
        code: str = TERRAFORM_COMMAND_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


def backend_config_args(backend_config: Mapping[str, str]) -> list[str]:
    """Compose -backend-config arguments, preserving order."""
    return [f"-backend-config={key}={value}" for key, value in backend_config.items()]


def var_args(variables: Mapping[str, object], var_file: str | None = None) -> list[str]:
    """Compose -var-file and -var arguments.

    Args:
        variables: Terraform input variables.
        var_file: Optional variables file, relative to the working directory.

    Returns:
        Argument list with the var file first, then one -var per variable.
    """
    args: list[str] = []
    if var_file:
        args.append(f"-var-file={var_file}")
    for key, value in variables.items():
        args.extend(["-var", f"{key}={value}"])
    return args


def _flag(name: str, value: bool) -> str:
    return f"-{name}={'true' if value else 'false'}"


class Terraform:
    """Handle for running terraform in a working directory.

    Args:
        working_dir: Directory holding the Terraform configuration.
        exec_path: Path to the terraform executable.
        env: Extra environment variables for every command.

    Raises:
        TerraformSetupError: If the working directory or executable is missing.
    """

    def __init__(
        self,
        working_dir: Path,
        exec_path: Path,
        env: Mapping[str, str] | None = None,
    ) -> None:
        if not working_dir.is_dir():
            raise TerraformSetupError(
                f"Terraform working directory does not exist: {working_dir}"
            )
        if not exec_path.is_file():
            raise TerraformSetupError(
                f"Terraform executable not found: {exec_path}"
            )

        self.working_dir = working_dir
        # subprocess resolves a relative executable against cwd=working_dir
        self.exec_path = exec_path.resolve()
        self.env = dict(env or {})
        self._stdout: TextIO | None = None

    def set_stdout(self, writer: TextIO | None) -> None:
        """Copy stdout of subsequent commands to writer."""
        self._stdout = writer

    def _environ(self) -> dict[str, str]:
        env = dict(os.environ)
        env["TF_IN_AUTOMATION"] = "1"
        env.update(self.env)
        return env

    def _run(
        self,
        args: list[str],
        ok_exit_codes: tuple[int, ...] = (0,),
        echo_stdout: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run terraform with args and return the completed process.

        Raises:
            TerraformCommandError: If terraform cannot start or exits with a
                code outside ok_exit_codes.
        """
        cmd = [str(self.exec_path), *args]
        cmd_str = shlex.join(["terraform", *args])
        logger.debug("Executing %s in %s", cmd_str, self.working_dir)

        try:
            result = subprocess.run(
                cmd,
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                env=self._environ(),
                check=False,
            )
        except OSError as e:
            raise TerraformCommandError(
                f"Failed to run {cmd_str}: {e}",
                command=cmd_str,
            ) from e

        if echo_stdout and self._stdout is not None and result.stdout:
            self._stdout.write(result.stdout)

        if result.returncode not in ok_exit_codes:
            stderr = (result.stderr or "").strip()
            raise TerraformCommandError(
                f"{cmd_str} exited with status {result.returncode}: {stderr}",
                command=cmd_str,
                exit_code=result.returncode,
                stderr=stderr,
            )

        return result

    def init(
        self,
        backend_config: Mapping[str, str] | None = None,
        upgrade: bool = False,
    ) -> None:
        """Run `terraform init`."""
        args = ["init", "-no-color", "-input=false", _flag("upgrade", upgrade)]
        args.extend(backend_config_args(backend_config or {}))
        self._run(args)

    def plan(
        self,
        variables: Mapping[str, object] | None = None,
        var_file: str | None = None,
        refresh: bool = True,
    ) -> bool:
        """Run `terraform plan`.

        Returns:
            True if the plan contains changes.
        """
        args = [
            "plan",
            "-no-color",
            "-input=false",
            "-detailed-exitcode",
            _flag("refresh", refresh),
        ]
        args.extend(var_args(variables or {}, var_file))
        result = self._run(args, ok_exit_codes=(0, PLAN_CHANGES_EXIT_CODE))
        return result.returncode == PLAN_CHANGES_EXIT_CODE

    def apply(
        self,
        variables: Mapping[str, object] | None = None,
        var_file: str | None = None,
        refresh: bool = True,
    ) -> None:
        """Run `terraform apply` without interactive approval."""
        args = [
            "apply",
            "-no-color",
            "-auto-approve",
            "-input=false",
            _flag("refresh", refresh),
        ]
        args.extend(var_args(variables or {}, var_file))
        self._run(args)

    def output(self) -> OutputSet:
        """Run `terraform output -json` and parse the result.

        The raw JSON holds sensitive values in clear text, so it is never
        copied to the stdout writer.

        Returns:
            Mapping of output name to OutputMeta, in Terraform's order.
        """
        result = self._run(["output", "-no-color", "-json"], echo_stdout=False)
        try:
            return output_set_adapter.validate_python(json.loads(result.stdout or "{}"))
        except (ValueError, ValidationError):
            # The payload may hold sensitive values; keep it out of the error
            raise TerraformCommandError(
                "terraform output -json returned unparseable output",
                command="terraform output -json",
            ) from None


__all__ = [
    "PLAN_CHANGES_EXIT_CODE",
    "Terraform",
    "TerraformCommandError",
    "TerraformSetupError",
    "backend_config_args",
    "var_args",
]
