"""sendxmpp CLI — command line interface."""

import asyncio
import sys

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .encryption import EncryptionPolicy
from .errors import SendXmppError, describe_error

console = Console(stderr=True)


def _select_policy(force_pgp: bool, attempt_pgp: bool) -> EncryptionPolicy:
    if force_pgp and attempt_pgp:
        raise click.UsageError("--force-pgp and --attempt-pgp are mutually exclusive")
    if force_pgp:
        return EncryptionPolicy.FORCE
    if attempt_pgp:
        return EncryptionPolicy.ATTEMPT
    return EncryptionPolicy.NONE


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="sendxmpp")
@click.argument("recipients", nargs=-1)
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              help="Path to config file. Default: ~/.config/sendxmpp.toml, then /etc/sendxmpp/sendxmpp.toml")
@click.option("-e", "--force-pgp", is_flag=True, help="Force OpenPGP encryption for all recipients")
@click.option("--attempt-pgp", is_flag=True, help="Attempt OpenPGP encryption for all recipients")
@click.option("--raw", is_flag=True, help="Relay raw XML between stdin/stdout and the server")
@click.option("-p", "--presence", is_flag=True, help="Send presence before sending")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(recipients, config_path, force_pgp, attempt_pgp, raw, presence, debug):
    """Send stdin as an XMPP message to RECIPIENTS."""
    policy = _select_policy(force_pgp, attempt_pgp)
    if raw:
        if recipients:
            raise click.UsageError("--raw does not take recipients")
        if policy is not EncryptionPolicy.NONE:
            raise click.UsageError("--raw cannot be combined with OpenPGP options")
    elif not recipients:
        raise click.UsageError("at least one recipient is required")

    from .main import run, setup_logging
    setup_logging(debug)

    try:
        code = asyncio.run(run(
            recipients,
            config_path=config_path,
            policy=policy,
            raw=raw,
            presence=presence,
        ))
    except SendXmppError as e:
        console.print(f"[red]sendxmpp: {escape(describe_error(e))}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]sendxmpp: {escape(describe_error(e))}[/red]")
        sys.exit(1)
    sys.exit(code)


def main():
    """CLI entry point."""
    try:
        cli(standalone_mode=False)
    except click.UsageError as e:
        if e.ctx:
            click.echo(e.ctx.command.get_usage(e.ctx), err=True)
        click.echo("Try 'sendxmpp --help' for help.\n", err=True)
        click.echo(f"Error: {e.format_message()}", err=True)
        sys.exit(2)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
