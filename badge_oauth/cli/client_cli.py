# badge_oauth/cli/client_cli.py
import typer
from typing import Annotated, List, Optional
from pydantic import ValidationError as PydanticValidationError

from .utils_cli import make_api_request
from ..oauth.models import ClientMetadata

app = typer.Typer(
    name="client",
    help="Register OAuth clients with a running authorization server.",
    no_args_is_help=True
)


@app.command("register")
def register_client(
    client_name: Annotated[str, typer.Option("--name", prompt=True, help="Human readable client name.")],
    redirect_uris: Annotated[List[str], typer.Option("--redirect-uri", help="Absolute redirect URI. Repeat for several.")],
    scope: Annotated[Optional[str], typer.Option(help="Space-separated scopes the client intends to request.")] = None,
    client_uri: Annotated[Optional[str], typer.Option(help="Home page of the client (optional).")] = None,
    token_endpoint_auth_method: Annotated[str, typer.Option(help="client_secret_basic or client_secret_post.")] = "client_secret_basic",
):
    """Register a new client. The client_secret is shown only in this response."""
    if not redirect_uris:
        typer.secho("Error: at least one --redirect-uri is required.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    payload = {
        "client_name": client_name,
        "redirect_uris": redirect_uris,
        "token_endpoint_auth_method": token_endpoint_auth_method,
    }
    if scope:
        payload["scope"] = scope
    if client_uri:
        payload["client_uri"] = client_uri

    # Validate payload against the Pydantic model before sending to API
    try:
        ClientMetadata.model_validate(payload)
    except PydanticValidationError as e:
        typer.secho(f"CLI Error: Invalid client metadata: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    make_api_request("POST", "/oauth2/register", json_payload=payload, expected_status=201)
