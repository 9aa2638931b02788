# badge_oauth/cli/utils_cli.py
import requests
import typer
import json
from typing import Optional, Dict, Any, Union, List, Tuple


def make_api_request(
    method: str,
    endpoint: str,
    json_payload: Optional[Dict[str, Any]] = None,
    form_payload: Optional[Dict[str, str]] = None,
    basic_auth: Optional[Tuple[str, str]] = None,
    expected_status: Union[int, List[int]] = 200
) -> Any:
    """
    Makes an HTTP request against the authorization server and echoes the
    exchange to the console.

    OAuth error bodies ({"error", "error_description"}) are printed in red
    and end the command with exit code 1.
    """
    from .config import BADGE_OAUTH_CLI_API_BASE_URL

    full_url = f"{BADGE_OAUTH_CLI_API_BASE_URL}{endpoint}"

    typer.echo(f"CLI: {method.upper()} {full_url}")
    if json_payload:
        typer.echo(f"CLI: JSON Payload: {json.dumps(json_payload, indent=2)}")
    if form_payload:
        # Never echo the token being sent
        log_form = {k: ("*******" if k in ("token", "client_secret") else v) for k, v in form_payload.items()}
        typer.echo(f"CLI: Form Payload: {log_form}")
    if basic_auth:
        typer.echo(f"CLI: Basic auth as client '{basic_auth[0]}'")

    try:
        response = requests.request(
            method,
            full_url,
            json=json_payload,
            data=form_payload,
            auth=basic_auth,
            timeout=30
        )
        typer.echo(f"CLI: Response Status: {response.status_code}")

        expected_statuses = [expected_status] if isinstance(expected_status, int) else expected_status

        if response.status_code in expected_statuses:
            try:
                data = response.json()
            except json.JSONDecodeError:
                typer.secho(
                    f"CLI: Error - Could not decode JSON response. Raw text: {response.text}",
                    fg=typer.colors.RED
                )
                raise typer.Exit(code=1)
            typer.echo(typer.style("CLI: Response JSON:", fg=typer.colors.CYAN))
            typer.echo(json.dumps(data, indent=2))
            return data

        err_msg = f"CLI: API Error - Expected status {expected_status}, got {response.status_code}."
        try:
            err_data = response.json()
            err_msg += f" {err_data.get('error', 'error')}: {err_data.get('error_description', response.text)}"
        except json.JSONDecodeError:
            err_msg += f" Raw response: {response.text}"
        typer.secho(err_msg, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    except requests.exceptions.ConnectionError as e:
        typer.secho(
            f"CLI: Connection Error - Could not connect to API at {full_url}. Is the server running? Error: {e}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    except requests.exceptions.RequestException as e:
        typer.secho(f"CLI: Request Error - {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
