"""CLI commands for fblogin."""

import asyncio
import base64
import json
import re
import secrets
import signal
from pathlib import Path

import click

from fblogin.auth.errors import SignedRequestError
from fblogin.auth.signed_request import encode_signed_request, parse_signed_request


@click.group()
@click.version_option(package_name="fblogin")
def cli():
    """fblogin - Facebook login callback service."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, workers, log_level):
    """Run the login service."""
    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "fblogin.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.workers = 1 if reload else workers
    config.loglevel = log_level.upper()
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from fblogin.asgi import app

    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


@cli.command()
@click.option(
    "--write",
    type=click.Path(),
    default=None,
    help="Write SECRET_KEY to a .env file",
)
@click.option(
    "--format",
    "fmt",
    default="urlsafe",
    type=click.Choice(["urlsafe", "hex", "base64"]),
    help="Output format for the secret key",
)
@click.option("--length", default=32, type=int, help="Number of random bytes")
def secret(write, fmt, length):
    """Generate a secure session secret key."""
    if fmt == "urlsafe":
        key = secrets.token_urlsafe(length)
    elif fmt == "hex":
        key = secrets.token_hex(length)
    else:  # base64
        key = base64.b64encode(secrets.token_bytes(length)).decode("ascii")

    if not write:
        click.echo(key)
        return

    env_path = Path(write)
    env_content = env_path.read_text() if env_path.exists() else ""

    secret_key_pattern = re.compile(r"^SECRET_KEY=.*$", re.MULTILINE)
    new_line = f"SECRET_KEY={key}"

    if secret_key_pattern.search(env_content):
        env_content = secret_key_pattern.sub(new_line, env_content)
    else:
        if env_content and not env_content.endswith("\n"):
            env_content += "\n"
        env_content += new_line + "\n"

    env_path.write_text(env_content)
    click.echo(f"SECRET_KEY written to {env_path}")


@cli.group("signed-request")
def signed_request():
    """Inspect or mint fbsr_ signed request cookie values."""
    pass


@signed_request.command("decode")
@click.argument("value")
@click.option("--app-secret", envvar="FACEBOOK_APP_SECRET", required=True, help="Facebook app secret")
def decode(value, app_secret):
    """Verify VALUE and print its payload."""
    try:
        parsed = parse_signed_request(value, app_secret)
    except SignedRequestError as exc:
        raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc
    click.echo(json.dumps(dict(parsed.fields), indent=2, sort_keys=True))


@signed_request.command("encode")
@click.argument("payload")
@click.option("--app-secret", envvar="FACEBOOK_APP_SECRET", required=True, help="Facebook app secret")
def encode(payload, app_secret):
    """Sign the JSON object PAYLOAD, e.g. '{"code": "abc"}'."""
    try:
        fields = json.loads(payload)
    except ValueError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="PAYLOAD") from exc
    if not isinstance(fields, dict):
        raise click.BadParameter("must be a JSON object", param_hint="PAYLOAD")
    click.echo(encode_signed_request(fields, app_secret))


if __name__ == "__main__":
    cli()
