"""Lambda build service module.

This module provides the high-level build API:
- should_build_lambdas(): Decide whether an operation needs fresh builds
- discover_lambdas(): List the Lambdas under the lambdas root
- build_lambdas(): Build every Lambda, or the single selected one

Each Lambda is tested and then built; the first failure stops the run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from tfdeploy.errors import LAMBDA_DISCOVERY_ERROR, DeployError
from tfdeploy.lambdas.runner import run_step
from tfdeploy.types import BUILD_ALL, BUILD_NONE, TerraformOperation

logger = logging.getLogger(__name__)

# Build-tool targets, in the order they run
TEST_STEP = "test"
BUILD_STEP = "target"


class LambdaDiscoveryError(DeployError):
    """Raised when the lambdas root cannot be listed."""

    def __init__(self, lambdas_dir: Path, reason: str) -> None:
        super().__init__(
            f"Cannot list Lambdas in {lambdas_dir}: {reason}",
            code=LAMBDA_DISCOVERY_ERROR,
        )
        self.lambdas_dir = lambdas_dir


class LambdaBuilder(Protocol):
    """Runs the test and build steps for a named Lambda."""

    def test(self, name: str) -> None: ...

    def build(self, name: str) -> None: ...


class MakeBuilder:
    """LambdaBuilder that runs the build tool in ``lambdas_dir/<name>``."""

    def __init__(self, lambdas_dir: Path, build_tool: str = "make") -> None:
        self.lambdas_dir = lambdas_dir
        self.build_tool = build_tool

    def test(self, name: str) -> None:
        run_step(self.lambdas_dir / name, TEST_STEP, build_tool=self.build_tool)

    def build(self, name: str) -> None:
        run_step(self.lambdas_dir / name, BUILD_STEP, build_tool=self.build_tool)


def should_build_lambdas(operation: TerraformOperation | str, selector: str) -> bool:
    """Return True if Lambdas must be built before the operation runs.

    Args:
        operation: Requested Terraform operation.
        selector: Build selector ('all', 'none' or a Lambda name).

    Returns:
        True for plan/apply unless the selector is 'none'.
    """
    if selector == BUILD_NONE:
        return False
    return operation in (TerraformOperation.PLAN, TerraformOperation.APPLY)


def discover_lambdas(lambdas_dir: Path) -> list[str]:
    """List Lambda names under the lambdas root.

    Only directories count as Lambdas; other entries are skipped.

    Args:
        lambdas_dir: Root directory to scan.

    Returns:
        Lambda names sorted by name.

    Raises:
        LambdaDiscoveryError: If the directory cannot be listed.
    """
    try:
        entries = sorted(lambdas_dir.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise LambdaDiscoveryError(lambdas_dir, str(e)) from e

    return [entry.name for entry in entries if entry.is_dir()]


def build_lambda(builder: LambdaBuilder, name: str) -> None:
    """Test and then build a single Lambda.

    Args:
        builder: Builder used to run the steps.
        name: Lambda name.

    Raises:
        LambdaBuildError: If either step fails.
    """
    logger.info("running tests for %s Lambda...", name)
    builder.test(name)
    logger.info("building %s Lambda...", name)
    builder.build(name)


def build_lambdas(
    builder: LambdaBuilder,
    lambdas_dir: Path,
    selector: str = BUILD_ALL,
) -> list[str]:
    """Build the Lambdas picked by the selector, one after another.

    Args:
        builder: Builder used to run the steps.
        lambdas_dir: Root directory holding the Lambdas.
        selector: 'all' for every discovered Lambda, otherwise a Lambda name.

    Returns:
        Names of the Lambdas that were built, in build order.

    Raises:
        LambdaDiscoveryError: If 'all' is requested and the root is unreadable.
        LambdaBuildError: On the first failing step.
    """
    logger.info("building Lambdas...")

    names = discover_lambdas(lambdas_dir) if selector == BUILD_ALL else [selector]

    for name in names:
        build_lambda(builder, name)

    return names


__all__ = [
    "BUILD_STEP",
    "TEST_STEP",
    "LambdaBuilder",
    "LambdaDiscoveryError",
    "MakeBuilder",
    "build_lambda",
    "build_lambdas",
    "discover_lambdas",
    "should_build_lambdas",
]
