# badge_oauth/cli/token_cli.py
import typer
from typing import Annotated, Optional

from .utils_cli import make_api_request

app = typer.Typer(
    name="token",
    help="Manage tokens issued by the authorization server.",
    no_args_is_help=True
)


@app.command("revoke")
def revoke_token(
    token: Annotated[str, typer.Argument(help="Access or refresh token to revoke.")],
    client_id: Annotated[str, typer.Option(prompt=True, help="Client ID of the registered client.")],
    client_secret: Annotated[str, typer.Option(prompt=True, hide_input=True, help="Client secret of the registered client.")],
    token_type_hint: Annotated[Optional[str], typer.Option("--hint", help="'access_token' or 'refresh_token'.")] = None,
):
    """Revoke a token on behalf of a client (RFC 7009)."""
    form = {"token": token}
    if token_type_hint:
        form["token_type_hint"] = token_type_hint

    make_api_request(
        "POST",
        "/oauth2/revoke",
        form_payload=form,
        basic_auth=(client_id, client_secret),
        expected_status=200
    )
    typer.secho("Token revoked.", fg=typer.colors.GREEN)
