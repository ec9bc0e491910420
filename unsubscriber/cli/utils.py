"""
Common utilities for CLI commands.
"""

import json
from typing import List

import click

from ..unsubscribe.types import UnsubscribeOutcome


def parse_message_ids(id_string: str) -> List[int]:
    """
    Parse message IDs from various formats.

    Supports:
        - Single ID: "5"
        - Comma-separated: "1,2,3"
        - Ranges: "1-5"
        - Mixed: "1,3-5,7"

    Duplicates are dropped, first occurrence wins.

    Raises:
        ValueError: On an empty or malformed part, or a descending range
    """
    ids = []
    for part in id_string.split(','):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty ID in {id_string!r}")
        if '-' in part:
            start, _, end = part.partition('-')
            start, end = int(start), int(end)
            if end < start:
                raise ValueError(f"Descending range {part!r}")
            ids.extend(range(start, end + 1))
        else:
            ids.append(int(part))

    return list(dict.fromkeys(ids))


def format_outcome(outcome: UnsubscribeOutcome) -> str:
    """One human-readable line per outcome."""
    prefix = "[DRY RUN] " if outcome.dry_run else ""
    method = outcome.method or '-'
    if outcome.ok:
        verb = "would unsubscribe" if outcome.dry_run else "unsubscribed"
        line = f"{prefix}#{outcome.id}: {verb} via {method}"
    else:
        line = f"{prefix}#{outcome.id}: failed ({outcome.error}) via {method}"
    if outcome.url:
        line += f" {outcome.url}"
    if outcome.status is not None:
        line += f" [HTTP {outcome.status}]"
    if outcome.error_detail:
        line += f" - {outcome.error_detail}"
    return line


def echo_outcome(outcome: UnsubscribeOutcome, as_json: bool):
    if as_json:
        click.echo(json.dumps(outcome.to_dict(), default=str))
        return
    click.secho(format_outcome(outcome), fg='green' if outcome.ok else 'red')
