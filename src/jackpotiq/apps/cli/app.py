# src/jackpotiq/apps/cli/app.py
import typer

from jackpotiq.apps.cli.commands import auth

app = typer.Typer(help="JackpotIQ device client")
app.add_typer(auth.app, name="auth")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
