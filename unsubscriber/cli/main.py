"""
Main CLI group for the unsubscriber.

Integrates all commands into a single CLI application.
"""

import click

from .. import __version__
from ..unsubscribe.logging import configure_unsubscribe_logging
from ..config import Config, load_config_from_env_file
from .commands.admin import init
from .commands.message import import_eml, links, attempts
from .commands.action import unsubscribe


@click.group()
@click.version_option(version=__version__, prog_name='Unsubscriber')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              default=None, help='Log level (defaults to LOG_LEVEL)')
def cli(log_level):
    """
    Unsubscriber - Resolve and execute unsubscribe requests for stored email.

    Tries the RFC 8058 one-click POST first and falls back to a browser
    agent for unsubscribe pages that need interaction.
    """
    configure_unsubscribe_logging(level=log_level or Config.LOG_LEVEL)


cli.add_command(init, name='init')
cli.add_command(import_eml, name='import-eml')
cli.add_command(links, name='links')
cli.add_command(unsubscribe, name='unsubscribe')
cli.add_command(attempts, name='attempts')


def main():
    """Console entry point: load .env, then run the CLI."""
    load_config_from_env_file()
    cli()


if __name__ == '__main__':
    main()
