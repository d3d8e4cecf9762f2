"""Thin CLI wrapper for tfdeploy.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from tfdeploy import __version__
from tfdeploy.config import get_settings, print_settings_json
from tfdeploy.errors import DeployError

app = typer.Typer(
    name="tfdeploy",
    help="Lambda build and Terraform deployment orchestrator",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger("tfdeploy")


def setup_logging(level: str) -> None:
    """Send tfdeploy log records to stderr through rich."""
    handler = RichHandler(console=err_console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tfdeploy version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Lambda build and Terraform deployment orchestrator."""
    setup_logging(get_settings().log_level)


@app.command()
def deploy(
    account_number: Annotated[
        int,
        typer.Option(
            "--account-number", min=0, help="Account number of AWS deployment target"
        ),
    ] = 0,
    environment: Annotated[
        str,
        typer.Option(
            "--environment", help="Target environment = prod, nonprod, etc"
        ),
    ] = "nonprod",
    region: Annotated[
        str,
        typer.Option("--region", help="Target region: e.g. us-east-1, eu-west-1"),
    ] = "us-east-1",
    app_name: Annotated[
        str,
        typer.Option("--app-name", help="Application name: e.g. jwt-authorizer"),
    ] = "jwt-authorizer",
    tfop: Annotated[
        str,
        typer.Option("--tfop", help="Terraform operation = init|plan|apply|destroy"),
    ] = "",
    build: Annotated[
        str,
        typer.Option(
            "--build",
            help="When running plan or apply, which Lambdas to build: "
            "all, none, <name-of-lambda>",
        ),
    ] = "all",
    vpc_id: Annotated[
        str,
        typer.Option("--vpc-id", help="The target VPC for the services"),
    ] = "",
) -> None:
    """Build Lambdas and run a Terraform operation."""
    from tfdeploy.config import DeploymentConfig
    from tfdeploy.deploy import run_deployment
    from tfdeploy.terraform.workflow import render_outputs
    from tfdeploy.types import TerraformOperation, parse_operation

    try:
        config = DeploymentConfig(
            operation=parse_operation(tfop),
            account_number=account_number,
            environment=environment,
            region=region,
            app_name=app_name,
            build=build,
            vpc_id=vpc_id,
        )
        result = run_deployment(config, settings=get_settings())
    except DeployError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1) from None

    if result.operation is TerraformOperation.INIT:
        console.print("[green]Terraform initialised[/green]")
    elif result.operation is TerraformOperation.PLAN:
        if result.plan_has_changes:
            console.print("[yellow]Plan has changes[/yellow]")
        else:
            console.print("[green]No changes[/green]")

    for line in render_outputs(result.outputs):
        console.print(line, markup=False, highlight=False, soft_wrap=True)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    from tfdeploy.terraform.install import TERRAFORM_VERSION

    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, soft_wrap=True)
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Lambdas directory:   {settings.lambdas_dir}")
        console.print(f"  Terraform directory: {settings.terraform_dir}")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print()
        console.print("[bold]Tools:[/bold]")
        console.print(f"  Build tool:          {settings.build_tool}")
        console.print(f"  Terraform version:   {TERRAFORM_VERSION}")
        console.print(f"  Releases URL:        {settings.releases_url}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Offline mode:        {settings.offline}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Download timeout:    {settings.download_timeout}")


lambdas_app = typer.Typer(help="Discover and build Lambdas")
app.add_typer(lambdas_app, name="lambdas")


@lambdas_app.command("list")
def lambdas_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List Lambdas found under the lambdas directory."""
    from tfdeploy.lambdas.service import discover_lambdas

    settings = get_settings()
    try:
        names = discover_lambdas(settings.lambdas_dir)
    except DeployError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1) from None

    if json_output:
        console.print(json.dumps(names, indent=2), markup=False, soft_wrap=True)
        return

    if not names:
        console.print("[yellow]No Lambdas found[/yellow]")
        return

    console.print(f"[bold]Found {len(names)} Lambda(s):[/bold]")
    for name in names:
        console.print(f"  [green]{name}[/green]")


@lambdas_app.command("build")
def lambdas_build(
    selector: Annotated[
        str,
        typer.Argument(help="Lambda to build, or 'all'"),
    ] = "all",
) -> None:
    """Test and build Lambdas without running Terraform."""
    from tfdeploy.lambdas.service import MakeBuilder, build_lambdas

    settings = get_settings()
    builder = MakeBuilder(settings.lambdas_dir, build_tool=settings.build_tool)
    try:
        built = build_lambdas(builder, settings.lambdas_dir, selector)
    except DeployError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1) from None

    for name in built:
        console.print(f"  [green]✓ {name}[/green]")


terraform_app = typer.Typer(help="Manage the pinned Terraform release")
app.add_typer(terraform_app, name="terraform")


@terraform_app.command("install")
def terraform_install() -> None:
    """Install the pinned Terraform release and print its path."""
    from tfdeploy.terraform.install import ensure_terraform

    try:
        exec_path = ensure_terraform(get_settings())
    except DeployError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1) from None

    console.print(str(exec_path), markup=False, highlight=False, soft_wrap=True)
