"""Build runner for executing build-tool steps in a Lambda directory.

This module handles:
- Composing the build-tool command for a step (`make test`, `make target`)
- Executing it with subprocess in the Lambda's directory
- Turning launch failures and non-zero exits into LambdaBuildError
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from tfdeploy.errors import LAMBDA_BUILD_ERROR, DeployError

logger = logging.getLogger(__name__)

# Lines of captured output carried in error messages
ERROR_OUTPUT_TAIL_LINES = 20


class LambdaBuildError(DeployError):
    """Raised when a Lambda build step fails."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_code: int | None = None,
        output: str = "",
        code: str = LAMBDA_BUILD_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.command = command
        self.exit_code = exit_code
        self.output = output


@dataclass
class StepResult:
    """Result of a successful build step.

    Attributes:
        command: The command that was executed.
        cwd: Directory the command ran in.
        output: Combined stdout/stderr of the command.
        started_at: Step start time.
        finished_at: Step finish time.
    """

    command: str
    cwd: Path
    output: str
    started_at: datetime
    finished_at: datetime


def compose_step_command(build_tool: str, step: str) -> list[str]:
    """Compose the build-tool command for a step.

    Args:
        build_tool: Build tool executable, optionally with arguments.
        step: Target to run (e.g. 'test', 'target').

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [*shlex.split(build_tool), step]


def _tail(output: str, lines: int = ERROR_OUTPUT_TAIL_LINES) -> str:
    return "\n".join(output.rstrip().splitlines()[-lines:])


def run_step(lambda_dir: Path, step: str, build_tool: str = "make") -> StepResult:
    """Run one build-tool step inside a Lambda directory.

    Args:
        lambda_dir: Lambda source directory (used as working directory).
        step: Target to run.
        build_tool: Build tool executable.

    Returns:
        StepResult describing the finished step.

    Raises:
        LambdaBuildError: If the command cannot be started or exits non-zero.
    """
    cmd = compose_step_command(build_tool, step)
    cmd_str = shlex.join(cmd)

    if not lambda_dir.is_dir():
        raise LambdaBuildError(
            f"error running {cmd_str}: Lambda directory not found: {lambda_dir}",
            command=cmd_str,
        )

    logger.debug("Executing %s in %s", cmd_str, lambda_dir)
    started_at = datetime.now(timezone.utc)

    try:
        result = subprocess.run(
            cmd,
            cwd=lambda_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as e:
        raise LambdaBuildError(
            f"error running {cmd_str} in {lambda_dir}: {e}",
            command=cmd_str,
        ) from e

    output = result.stdout or ""
    if result.returncode != 0:
        message = (
            f"error running {cmd_str} in {lambda_dir}: "
            f"exit status {result.returncode}"
        )
        tail = _tail(output)
        if tail:
            message = f"{message}\n{tail}"
        raise LambdaBuildError(
            message,
            command=cmd_str,
            exit_code=result.returncode,
            output=output,
        )

    if output:
        logger.debug("%s output:\n%s", cmd_str, output.rstrip())

    return StepResult(
        command=cmd_str,
        cwd=lambda_dir,
        output=output,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
    )


__all__ = [
    "LambdaBuildError",
    "StepResult",
    "compose_step_command",
    "run_step",
]
