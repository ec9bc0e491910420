"""
Action commands for the unsubscriber.

Handles running unsubscribe resolution for stored messages.
"""

import click

from ...cli_session import get_cli_session_manager
from ...config import Config
from ...config.settings import ONE_CLICK_POLICIES
from ...database.models import Account
from ...unsubscribe_executor.orchestrator import UnsubscribeOrchestrator
from ..utils import parse_message_ids, echo_outcome


@click.command('unsubscribe')
@click.argument('ids')
@click.option('--account', 'account_email', required=True, help='Mailbox address that owns the messages')
@click.option('--dry-run', is_flag=True, help='Show which strategy would run without executing')
@click.option('--deadline', type=click.FloatRange(min=0), help='Overall time budget in seconds')
@click.option('--one-click-policy', type=click.Choice(ONE_CLICK_POLICIES),
              help='Which header links may receive the one-click POST')
@click.option('--json', 'as_json', is_flag=True, help='Print one JSON object per message')
def unsubscribe(ids, account_email, dry_run, deadline, one_click_policy, as_json):
    """
    Unsubscribe from the senders of stored messages.

    IDS accepts single IDs, comma-separated lists and ranges.

    Example:
        python main.py unsubscribe 5 --account user@example.com
        python main.py unsubscribe 1,3-5 --account user@example.com --dry-run
    """
    try:
        message_ids = parse_message_ids(ids)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='IDS')

    if not dry_run and not Config.is_openai_configured():
        click.secho("⚠ OPENAI_API_KEY is not set: pages that need interaction will fail with "
                    "openai_not_configured", fg='yellow')

    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        account = session.query(Account).filter_by(email_address=account_email.strip().lower()).first()
        if not account:
            click.secho(f"✗ Error: Account {account_email} not found", fg='red')
            raise click.Abort()

        orchestrator = UnsubscribeOrchestrator(
            session,
            one_click_policy=one_click_policy,
            dry_run=dry_run,
        )
        outcomes = orchestrator.run(account.id, message_ids, deadline_seconds=deadline)

    for outcome in outcomes:
        echo_outcome(outcome, as_json)

    if not as_json:
        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        click.echo(f"\n{succeeded}/{len(outcomes)} succeeded")
