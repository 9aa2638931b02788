# badge_oauth/cli/pkce_cli.py
import json
import typer
from typing import Annotated

from ..oauth.pkce import (
    CODE_VERIFIER_LENGTH,
    SUPPORTED_CODE_CHALLENGE_METHODS,
    generate_pkce_code_challenge,
    generate_pkce_code_verifier,
    validate_pkce_code_verifier_format,
)

app = typer.Typer(
    name="pkce",
    help="Offline PKCE helpers for exercising the authorization code flow.",
    no_args_is_help=True
)


def _check_method(method: str) -> None:
    if method not in SUPPORTED_CODE_CHALLENGE_METHODS:
        typer.secho(
            f"Error: unsupported method '{method}'. Use one of {', '.join(SUPPORTED_CODE_CHALLENGE_METHODS)}.",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)


@app.command("generate")
def generate_pair(
    method: Annotated[str, typer.Option(help="Code challenge method: S256 or plain.")] = "S256",
    length: Annotated[int, typer.Option(help="Verifier length (43-128).")] = CODE_VERIFIER_LENGTH,
):
    """Generate a code_verifier and the matching code_challenge."""
    _check_method(method)
    try:
        verifier = generate_pkce_code_verifier(length)
    except ValueError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(json.dumps({
        "code_verifier": verifier,
        "code_challenge": generate_pkce_code_challenge(verifier, method),
        "code_challenge_method": method,
    }, indent=2))


@app.command("challenge")
def compute_challenge(
    code_verifier: Annotated[str, typer.Argument(help="An existing code_verifier.")],
    method: Annotated[str, typer.Option(help="Code challenge method: S256 or plain.")] = "S256",
):
    """Compute the code_challenge for an existing code_verifier."""
    _check_method(method)
    if not validate_pkce_code_verifier_format(code_verifier):
        typer.secho(
            "Error: code_verifier must be 43-128 characters of [A-Za-z0-9-._~].",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    typer.echo(generate_pkce_code_challenge(code_verifier, method))
