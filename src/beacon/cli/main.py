"""Entry point of the ``beacon`` command."""

import typer

from beacon.cli.commands import identity, queue

app = typer.Typer(
    name="beacon",
    help="Inspect and flush telemetry state persisted by beacon clients.",
    no_args_is_help=True,
)

app.add_typer(queue.app)
app.add_typer(identity.app)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
