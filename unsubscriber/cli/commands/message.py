"""
Message commands for the unsubscriber.

Handles importing messages and inspecting their links and attempt history.
"""

import json
from pathlib import Path

import click

from ...cli_session import get_cli_session_manager
from ...database.models import EmailMessage
from ...database.store import UnsubscribeStore
from ...email_processor import import_message
from ...unsubscribe_executor.orchestrator import UnsubscribeOrchestrator


@click.command('import-eml')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--account', 'account_email', required=True, help='Mailbox address the message belongs to')
def import_eml(path, account_email):
    """
    Import an RFC 822 (.eml) file as a stored message.

    Example:
        python main.py import-eml newsletter.eml --account user@example.com
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        try:
            message = import_message(session, account_email, path.read_bytes())
        except Exception as e:
            click.secho(f"✗ Error importing {path}: {e}", fg='red')
            raise click.Abort()

        click.secho(f"✓ Imported message {message.id}", fg='green')
        click.echo(f"  From: {message.sender_email or '-'}")
        click.echo(f"  Subject: {message.subject or '-'}")
        click.echo(f"  List-Unsubscribe: {'yes' if message.has_unsubscribe_header else 'no'}")


@click.command('links')
@click.argument('message_id', type=int)
def links(message_id):
    """
    Show the unsubscribe links found for a message.

    Uses the cached extraction when one is stored, otherwise extracts and
    caches it.

    Example:
        python main.py links 12
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        message = session.query(EmailMessage).filter_by(id=message_id).first()
        if not message:
            click.secho(f"✗ Error: Message {message_id} not found", fg='red')
            raise click.Abort()

        found = UnsubscribeOrchestrator(session).resolve_links(message)

        click.echo(f"\nUnsubscribe links for message {message_id}:")
        for label, values in (
            ('Header HTTP', found.http_links),
            ('Header mailto', found.mailto_links),
            ('Body (guessed)', found.guessed_links),
        ):
            click.echo(f"  {label}:")
            if not values:
                click.echo("    (none)")
            for value in values:
                click.echo(f"    {value}")
        click.echo(f"  List-Unsubscribe-Post: {found.list_unsubscribe_post or '-'}")


@click.command('attempts')
@click.argument('message_id', type=int)
@click.option('--details', 'show_details', is_flag=True, help='Include the stored diagnostics')
def attempts(message_id, show_details):
    """
    Show the unsubscribe attempt history of a message.

    Example:
        python main.py attempts 12 --details
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        history = UnsubscribeStore(session).list_attempts(message_id)
        if not history:
            click.echo(f"No unsubscribe attempts recorded for message {message_id}")
            return

        for attempt in history:
            color = 'green' if attempt.succeeded else 'red'
            line = f"{attempt.attempted_at}  {attempt.method_used:<15} {attempt.status}"
            if attempt.response_code is not None:
                line += f" [HTTP {attempt.response_code}]"
            if attempt.error_message:
                line += f" {attempt.error_message}"
            click.secho(line, fg=color)
            if show_details and attempt.details:
                click.echo(json.dumps(json.loads(attempt.details), indent=2))
