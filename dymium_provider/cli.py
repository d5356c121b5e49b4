"""CLI entry point for Dymium Provider."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import click

from . import __version__
from .config import load_env
from .errors import DymiumError
from .manager import TokenManager
from .output import OutputHandler, echo_state
from .scheduler import RefreshScheduler
from .service import CommandResult, ProviderService
from .state import TokenState, state_to_dict

# Logger for CLI
logger = logging.getLogger("dymium")

IS_WINDOWS = sys.platform == "win32"


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, verbose: bool) -> None:
    """Dymium Provider - Keep OpenCode authenticated against the Dymium LLM gateway."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["verbose"] = verbose
    ctx.obj["output"] = OutputHandler(json_mode)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    load_env(Path(env_path) if env_path else None)


def get_service(ctx: click.Context) -> ProviderService:
    """Get the shared service, creating it on first use."""
    service = ctx.obj.get("service")
    if service is None:
        service = ProviderService(TokenManager())
        ctx.obj["service"] = service
    return service


def report(ctx: click.Context, result: CommandResult, human_message: str) -> None:
    """Print a command result, exiting with status 1 on failure."""
    output: OutputHandler = ctx.obj["output"]

    if not result.success:
        help_text = f"Category: {result.category}" if result.category else None
        error = result.exception or DymiumError(result.error or "Unknown error")
        output.error(error, help_text=help_text, data=result.to_dict())
        return

    output.success(result.to_dict(), human_message=human_message)
    if not ctx.obj["json_mode"]:
        echo_state(result.state)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the configuration and credential status."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx)

    async def collect() -> dict[str, Any]:
        async with service.locked() as manager:
            return {
                "config": manager.config.to_public_dict(),
                "state": state_to_dict(manager.state),
                "credentialsConfigured": manager.has_credentials(),
                "tokenFilePresent": manager.token_file.exists(),
            }

    data = asyncio.run(collect())
    config_data = data["config"]
    token_present = data["tokenFilePresent"]

    if ctx.obj["json_mode"]:
        output.success(data)
        return

    click.secho("Dymium Provider", bold=True)
    click.echo(f"  Auth mode:          {config_data['authMode']}")
    click.echo(f"  LLM endpoint:       {config_data['llmEndpoint']}")
    click.echo(f"  Effective endpoint: {config_data['effectiveEndpoint']}")
    if config_data["authMode"] == "oAuth":
        click.echo(f"  Issuer:             {config_data['issuerUrl'] or '(not set)'}")
        click.echo(f"  Realm / client:     {config_data['realm']} / {config_data['clientId']}")
        click.echo(f"  Username:           {config_data['username'] or '(not set)'}")
    if config_data["app"]:
        click.echo(f"  App:                {config_data['app']}")
    click.echo(f"  Credentials:        {'configured' if data['credentialsConfigured'] else 'missing'}")
    click.echo(f"  Token file:         {'present' if token_present else 'absent'}")


@main.group()
def setup() -> None:
    """Configure how credentials are obtained."""


@setup.command("oauth")
@click.option("--issuer-url", required=True, help="OAuth issuer base URL")
@click.option("--realm", default="dymium", show_default=True, help="Issuer realm")
@click.option("--client-id", default="dymium", show_default=True, help="OAuth client id")
@click.option("--username", required=True, help="Username for the password grant")
@click.option("--endpoint", "llm_endpoint", required=True, help="LLM gateway base URL")
@click.option("--app", default=None, help="Gateway routing app name")
@click.option("--client-secret", prompt=True, hide_input=True, help="OAuth client secret")
@click.option("--password", prompt=True, hide_input=True, help="Password for the password grant")
@click.pass_context
def setup_oauth(
    ctx: click.Context,
    issuer_url: str,
    realm: str,
    client_id: str,
    username: str,
    llm_endpoint: str,
    app: str | None,
    client_secret: str,
    password: str,
) -> None:
    """Switch to OAuth mode. Run 'dymium refresh' to authenticate."""
    service = get_service(ctx)
    result = asyncio.run(
        service.save_oauth_setup(
            issuer_url=issuer_url,
            realm=realm,
            client_id=client_id,
            username=username,
            llm_endpoint=llm_endpoint,
            app=app,
            client_secret=client_secret,
            password=password,
        )
    )
    report(ctx, result, "OAuth configuration saved.")


@setup.command("static-key")
@click.option("--endpoint", "llm_endpoint", required=True, help="LLM gateway base URL")
@click.option("--key", "static_key", prompt="API key", hide_input=True, help="Static API key")
@click.option("--app", default=None, help="Gateway routing app name")
@click.pass_context
def setup_static_key(ctx: click.Context, llm_endpoint: str, static_key: str, app: str | None) -> None:
    """Switch to static API key mode. Run 'dymium refresh' to verify."""
    service = get_service(ctx)
    result = asyncio.run(service.save_static_key_setup(llm_endpoint, static_key, app))
    report(ctx, result, "Static API key configuration saved.")


@main.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Authenticate now and update OpenCode."""
    service = get_service(ctx)
    result = asyncio.run(service.manual_refresh())
    report(ctx, result, "Refresh complete.")


@main.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Clear all stored credentials."""
    service = get_service(ctx)
    result = asyncio.run(service.log_out())
    report(ctx, result, "Logged out.")


@main.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Write the provider entry and auth record into OpenCode's config."""
    service = get_service(ctx)
    result = asyncio.run(service.sync_consumer_config())
    report(ctx, result, "OpenCode configuration synchronized.")


async def run_provider(service: ProviderService, scheduler: RefreshScheduler | None = None) -> TokenState:
    """Authenticate, then refresh on schedule until a signal arrives.

    Returns:
        The token state at shutdown
    """
    scheduler = scheduler or RefreshScheduler(service)
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown")
        scheduler.stop()

    if not IS_WINDOWS:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_signal, sig)
    else:
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, lambda s, f: handle_signal(signal.Signals(s)))

    result = await service.startup()
    if result.success:
        logger.info(f"Startup finished in state {result.state.name}")
    else:
        logger.error(f"Startup authentication failed ({result.category}): {result.error}")

    await scheduler.run()
    return await service.get_state()


@main.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run in the foreground, keeping the token fresh until interrupted."""
    if not ctx.obj["verbose"]:
        logging.getLogger().setLevel(logging.INFO)

    service = get_service(ctx)
    state = asyncio.run(run_provider(service))

    if ctx.obj["json_mode"]:
        ctx.obj["output"].success({"state": state_to_dict(state)})
    else:
        echo_state(state)


if __name__ == "__main__":
    main()
