"""Entry point for ``python -m pyimagegen``."""

from pyimagegen.cli import app

app(prog_name="pyimagegen")
