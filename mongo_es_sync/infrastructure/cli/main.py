import typer

from .commands import checkpoints as checkpoints_cmd
from .commands import run as run_cmd

app = typer.Typer(help="Replicate MongoDB collections into Elasticsearch")

app.command(name="run")(run_cmd.run)
app.add_typer(checkpoints_cmd.app, name="checkpoints")


if __name__ == "__main__":
    app()
