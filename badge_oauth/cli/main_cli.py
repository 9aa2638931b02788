# badge_oauth/cli/main_cli.py
import typer
from . import client_cli
from . import token_cli
from . import pkce_cli

# Main CLI application with help enabled when no arguments are provided
app = typer.Typer(
    name="badge-oauth",
    help="Open Badges OAuth 2.0 Authorization Server Command Line Interface.",
    no_args_is_help=True
)

# Register command groups
app.add_typer(client_cli.app, name="client")
app.add_typer(token_cli.app, name="token")
app.add_typer(pkce_cli.app, name="pkce")


@app.callback()
def main_callback():
    """
    Open Badges OAuth main CLI application.
    Use 'badge-oauth client --help' to register clients against a running server.
    """
    pass


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
