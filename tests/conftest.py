"""Shared fixtures: fake Lambda builder and Terraform handle."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from tfdeploy.config import Settings
from tfdeploy.lambdas.runner import LambdaBuildError
from tfdeploy.terraform.executor import TerraformCommandError
from tfdeploy.terraform.models import OutputMeta


class RecordingBuilder:
    """LambdaBuilder that records calls and can fail on a given step."""

    def __init__(self, fail_on: tuple[str, str] | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_on = fail_on

    def _record(self, step: str, name: str) -> None:
        self.calls.append((step, name))
        if self.fail_on == (step, name):
            raise LambdaBuildError(
                f"error running make {step} in lambdas/{name}: exit status 2",
                command=f"make {step}",
                exit_code=2,
            )

    def test(self, name: str) -> None:
        self._record("test", name)

    def build(self, name: str) -> None:
        self._record("target", name)


class FakeTerraform:
    """In-memory TerraformHandle that records calls."""

    def __init__(
        self,
        working_dir: Path,
        outputs: dict[str, OutputMeta] | None = None,
        plan_changes: bool = True,
        fail_on: str | None = None,
        stdout: str = "",
    ) -> None:
        self.working_dir = working_dir
        self.outputs = outputs or {}
        self.plan_changes = plan_changes
        self.fail_on = fail_on
        self.stdout_text = stdout
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._stdout = None

    def set_stdout(self, writer) -> None:
        self._stdout = writer

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if self._stdout is not None and self.stdout_text:
            self._stdout.write(self.stdout_text)
        if self.fail_on == name:
            raise TerraformCommandError(
                f"terraform {name} exited with status 1: boom",
                command=f"terraform {name}",
                exit_code=1,
                stderr="boom",
            )

    def init(self, backend_config=None, upgrade=False) -> None:
        self._record("init", backend_config=dict(backend_config or {}), upgrade=upgrade)

    def plan(self, variables=None, var_file=None, refresh=True) -> bool:
        self._record(
            "plan", variables=dict(variables or {}), var_file=var_file, refresh=refresh
        )
        return self.plan_changes

    def apply(self, variables=None, var_file=None, refresh=True) -> None:
        self._record(
            "apply", variables=dict(variables or {}), var_file=var_file, refresh=refresh
        )

    def output(self) -> dict[str, OutputMeta]:
        self.calls.append(("output", {}))
        return self.outputs

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def terraform_dir(tmp_path: Path) -> Path:
    """Terraform working directory with nonprod and prod var files."""
    root = tmp_path / "terraform"
    (root / "environments").mkdir(parents=True)
    (root / "environments" / "nonprod.tfvars").write_text('foo = "bar"\n')
    (root / "environments" / "prod.tfvars").write_text('foo = "baz"\n')
    return root


@pytest.fixture
def lambdas_dir(tmp_path: Path) -> Path:
    """Lambdas root with two Lambdas and a stray file."""
    root = tmp_path / "lambdas"
    (root / "authorizer").mkdir(parents=True)
    (root / "rotator").mkdir()
    (root / "README").write_text("not a lambda\n")
    return root


@pytest.fixture
def settings(tmp_path: Path, lambdas_dir: Path, terraform_dir: Path) -> Settings:
    """Settings pointing at the temporary workspace."""
    return Settings(
        lambdas_dir=lambdas_dir,
        terraform_dir=terraform_dir,
        cache_dir=tmp_path / "cache",
    )


@pytest.fixture
def fake_tf(terraform_dir: Path) -> FakeTerraform:
    return FakeTerraform(terraform_dir)


@pytest.fixture
def make_builder():
    """Factory for RecordingBuilder instances."""
    return RecordingBuilder


@pytest.fixture
def make_fake_tf(terraform_dir: Path):
    """Factory for FakeTerraform handles bound to the workspace."""

    def _make(**kwargs: Any) -> FakeTerraform:
        return FakeTerraform(terraform_dir, **kwargs)

    return _make
