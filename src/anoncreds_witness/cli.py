"""
Command-line interface for anoncreds-witness.

Usage:
    anoncreds-witness check-binding credential.json
    anoncreds-witness check-binding --non-revocable https://example.com/creds/123
    anoncreds-witness refresh credential.json --ledger URL --tails URL
    cat credential.json | anoncreds-witness check-binding -
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from anoncreds_witness.algebra import ModularAlgebra
from anoncreds_witness.binding import (
    BINDING_FIELDS,
    binding_to_payload,
    parse_binding,
    present_fields,
)
from anoncreds_witness.errors import RevocationError, RevokedCredentialError
from anoncreds_witness.remote import HttpRegistryLedger, HttpTailsSource
from anoncreds_witness.retry import RetryPolicy
from anoncreds_witness.witness import WitnessRecomputer


console = Console()


def load_credential(source: str, timeout: float = 30.0) -> dict[str, Any]:
    """Load credential from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.
        timeout: HTTP request timeout in seconds.

    Returns:
        Parsed credential JSON.

    Raises:
        click.ClickException: If the file is missing or the document is not
            a JSON object.
    """
    if source == "-":
        document = json.loads(sys.stdin.read())
    elif source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=timeout) as client:
            response = client.get(source, headers={"Accept": "application/json"})
            response.raise_for_status()
            document = response.json()
    else:
        path = Path(source)
        if not path.exists():
            raise click.ClickException(f"File not found: {source}")
        with path.open() as f:
            document = json.load(f)

    if not isinstance(document, dict):
        raise click.ClickException(
            f"Expected a JSON object, got {type(document).__name__}"
        )
    return document


def format_binding_result(
    payload: dict[str, Any], revocable: bool, error: RevocationError | None
) -> None:
    """Print a binding check result."""
    if error is None:
        status = "[bold green]VALID[/]"
        panel_style = "green"
    else:
        status = "[bold red]INVALID[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Binding", status)
    table.add_row("Declared", "revocable" if revocable else "non-revocable")
    present = present_fields(payload)
    for name in BINDING_FIELDS:
        table.add_row(name, "[green]present[/]" if name in present else "[dim]absent[/]")
    if error is not None:
        table.add_row("Error", f"[red]{error}[/]")

    console.print(Panel(table, title="Revocation Binding", border_style=panel_style))


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True))],
        )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="anoncreds-witness")
def main(verbose: bool) -> None:
    """Revocation witness tools for accumulator-based credentials."""
    _configure_logging(verbose)


@main.command("check-binding")
@click.argument("source", required=True)
@click.option(
    "--revocable/--non-revocable",
    default=True,
    help="Whether the credential definition supports revocation",
)
@click.option("--json-output", is_flag=True, help="Output result as JSON")
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    help="HTTP request timeout in seconds",
)
def check_binding_command(
    source: str, revocable: bool, json_output: bool, timeout: float
) -> None:
    """Check the witness/registry binding of a credential or presentation.

    SOURCE can be a file path, a URL, or "-" to read from stdin.
    """
    try:
        payload = load_credential(source, timeout=timeout)
        algebra = ModularAlgebra()
        error: RevocationError | None = None
        try:
            parse_binding(payload, revocable, algebra)
        except RevocationError as e:
            error = e

        if json_output:
            console.print_json(
                data={
                    "valid": error is None,
                    "revocable": revocable,
                    "present": present_fields(payload),
                    "error": str(error) if error else None,
                }
            )
        else:
            format_binding_result(payload, revocable, error)

        sys.exit(0 if error is None else 1)

    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/] Invalid JSON: {e}")
        sys.exit(2)

    except httpx.HTTPError as e:
        console.print(f"[red]Error:[/] HTTP error: {e}")
        sys.exit(2)

    except click.ClickException as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(2)

    except Exception as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(2)


@main.command("refresh")
@click.argument("source", required=True)
@click.option("--ledger", "ledger_url", required=True, help="Registry ledger URL")
@click.option("--tails", "tails_url", required=True, help="Tails server URL")
@click.option("--target", default=None, help="Target accumulator value (hex)")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the updated credential here instead of stdout",
)
@click.option("--no-ssl-verify", is_flag=True, help="Disable SSL certificate verification")
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    help="HTTP request timeout in seconds",
)
@click.option("--retries", type=int, default=3, help="Attempts per remote fetch")
def refresh_command(
    source: str,
    ledger_url: str,
    tails_url: str,
    target: str | None,
    output: str | None,
    no_ssl_verify: bool,
    timeout: float,
    retries: int,
) -> None:
    """Recompute a credential's witness against the latest registry state.

    SOURCE can be a file path, a URL, or "-" to read from stdin.
    """
    try:
        payload = load_credential(source, timeout=timeout)
        algebra = ModularAlgebra()
        binding = parse_binding(payload, True, algebra)

        remote = {
            "algebra": algebra,
            "timeout": timeout,
            "verify_ssl": not no_ssl_verify,
            "retry": RetryPolicy(max_attempts=retries),
        }
        recomputer = WitnessRecomputer(
            algebra,
            HttpTailsSource(tails_url, **remote),
            registry_id=binding.registry_id,
        )
        ledger = HttpRegistryLedger(ledger_url, **remote)
        refreshed = binding.refresh(
            recomputer,
            ledger,
            target=algebra.decode(target) if target else None,
        )

        updated = {**payload, **binding_to_payload(refreshed, algebra)}
        document = json.dumps(updated, indent=2)
        if output:
            Path(output).write_text(document + "\n", encoding="utf-8")
            console.print(f"[green]Witness refreshed[/] -> {output}")
        else:
            click.echo(document)
        sys.exit(0)

    except RevokedCredentialError as e:
        console.print(f"[bold red]Revoked:[/] {e}")
        sys.exit(1)

    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/] Invalid JSON: {e}")
        sys.exit(2)

    except (RevocationError, ValueError, httpx.HTTPError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(2)

    except click.ClickException as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(2)

    except Exception as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
