"""Show where Chime keeps its state."""

import typer

from chime.cli.console import console, create_table


def register(app: typer.Typer) -> None:
    """Register the paths command."""

    @app.command()
    def paths() -> None:
        """Show resolved Chime paths (honors CHIME_HOME)."""
        from chime.config.paths import get_all_paths

        table = create_table(None, [("Name", "cyan"), ("Path", ""), ("Exists", "")])
        for name, path in get_all_paths().items():
            table.add_row(name, str(path), "yes" if path.exists() else "no")
        console.print(table)
