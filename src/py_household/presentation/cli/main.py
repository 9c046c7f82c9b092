from __future__ import annotations

import sys

from typer import Typer

from py_household import __version__
from py_household.domain.errors import DomainError, ValidationError
from py_household.infrastructure.migrations.cli import app as migrations

from .account import account
from .goal import goal
from .reconcile import reconcile
from .transactions import tx
from .transfer import transfer

app: Typer = Typer(
    help="Household ledger CLI: accounts, journal, transfers, goals and reconciliation.",
    add_completion=False,
    pretty_exceptions_enable=False,
)
app.add_typer(account, name="account")
app.add_typer(tx, name="tx")
app.add_typer(transfer, name="transfer")
app.add_typer(goal, name="goal")
app.add_typer(reconcile, name="reconcile")
app.add_typer(migrations, name="migrations")


@app.command("version")
def version_cmd() -> None:
    """Print package version."""
    print(__version__)


def cli(argv: list[str] | None = None) -> int:
    """Run the Typer application with top-level error handling.

    Exit codes: 0 success, 2 validation/domain/value errors, 1 unexpected.
    SystemExit passes through. Accepts optional argv for programmatic testing.
    """
    try:
        app(args=argv if argv is not None else sys.argv[1:], prog_name="py-household")
        return 0
    except ValidationError as ve:
        print(f"[ERROR] {ve}", file=sys.stderr)
        return 2
    except DomainError as de:
        print(f"[ERROR] {de}", file=sys.stderr)
        return 2
    except ValueError as ve:
        print(f"[ERROR] {ve}", file=sys.stderr)
        return 2
    except SystemExit as se:
        return int(se.code) if isinstance(se.code, int) else 0
    except Exception as exc:
        print(f"[ERROR] unexpected: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(cli())
