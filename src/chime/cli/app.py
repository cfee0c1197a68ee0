"""Main CLI application."""

import typer

from chime.cli.commands import paths, serve, task

app = typer.Typer(
    name="chime",
    help="Chime - file-backed task scheduler",
    no_args_is_help=True,
)

serve.register(app)
task.register(app)
paths.register(app)


if __name__ == "__main__":
    app()
