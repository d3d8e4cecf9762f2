"""Entry point for `python -m tfdeploy`."""

from tfdeploy.cli import app

app()
