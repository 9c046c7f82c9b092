from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    """Per-test directory holding the three store files and exports."""
    return tmp_path


def run_cli(args: list[str], workdir: Path, tenant: str | None = "t1") -> subprocess.CompletedProcess[str]:
    """Run the CLI in a subprocess with every store URL pointing into ``workdir``."""
    env = dict(os.environ)
    for key in list(env):
        if key.startswith("HOUSEHOLD"):
            env.pop(key)
    env.update(
        {
            "PYTHONPATH": str(PACKAGE_ROOT / "src"),
            "ENV": "test",
            "ACCOUNTS_DATABASE_URL": f"sqlite+aiosqlite:///{workdir / 'accounts.db'}",
            "JOURNAL_DATABASE_URL": f"sqlite+aiosqlite:///{workdir / 'journal.db'}",
            "GOALS_DATABASE_URL": f"sqlite+aiosqlite:///{workdir / 'goals.db'}",
            "LOG_LEVEL": "WARNING",
        }
    )
    if tenant:
        env["HOUSEHOLD_TENANT"] = tenant
    cmd = [sys.executable, "-m", "py_household.presentation.cli.main", *args]
    return subprocess.run(cmd, capture_output=True, text=True, cwd=str(workdir), env=env)


def run_json(args: list[str], workdir: Path, tenant: str | None = "t1"):
    proc = run_cli([*args, "--json"], workdir, tenant)
    assert proc.returncode == 0, proc.stderr
    return json.loads(proc.stdout)


def test_version(workdir: Path):
    proc = run_cli(["version"], workdir)
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.strip() == "0.1.0"


def test_account_add_list_and_human_output(workdir: Path):
    acc = run_json(["account", "add", "BCA", "bank", "--opening", "1500.50"], workdir)
    assert acc["current_balance"] == 150_050
    assert acc["currency"] == "IDR"
    assert acc["tenant_id"] == "t1"

    page = run_json(["account", "list"], workdir)
    assert page["total"] == 1
    assert page["items"][0]["id"] == acc["id"]

    proc = run_cli(["account", "get", acc["id"]], workdir)
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.strip() == f"Account {acc['id']} 'BCA' type=bank balance=1500.50 IDR status=sufficient"

    other = run_json(["account", "list"], workdir, tenant="t2")
    assert other["total"] == 0


def test_ledger_flow_through_the_cli(workdir: Path):
    bca = run_json(["account", "add", "BCA", "bank", "--opening", "1000"], workdir)
    cash = run_json(["account", "add", "Cash", "cash"], workdir)

    txn = run_json(
        ["tx", "add", bca["id"], "expense", "120", "--date", "2026-03-01", "--split", "food=100", "--split", "fuel=20"],
        workdir,
    )
    assert txn["status"] == "applied"
    assert [s["amount"] for s in txn["splits"]] == [10_000, 2_000]

    transfer = run_json(["transfer", "create", bca["id"], cash["id"], "300", "--date", "2026-03-02"], workdir)
    assert transfer["target_kind"] == "account"

    goal = run_json(["goal", "add", "Holiday", "5000", "--type", "vacation"], workdir)
    contribution = run_json(["goal", "contribute", goal["id"], bca["id"], "80", "--date", "2026-03-03"], workdir)
    assert contribution["status"] == "applied"

    assert run_json(["account", "get", bca["id"]], workdir)["current_balance"] == 50_000
    assert run_json(["account", "get", cash["id"]], workdir)["current_balance"] == 30_000
    assert run_json(["goal", "get", goal["id"]], workdir)["accumulated_amount"] == 8_000

    listed = run_json(["tx", "list", "--kind", "expense"], workdir)
    assert [t["id"] for t in listed["items"]] == [txn["id"]]

    proc = run_cli(["transfer", "resolve", goal["id"]], workdir)
    assert proc.stdout.strip() == f"goal {goal['id']}"

    report = run_json(["reconcile", "run"], workdir)
    assert report["consistent"] is True
    assert report["report"]["checked_accounts"] == 2


def test_export_writes_file(workdir: Path):
    bca = run_json(["account", "add", "BCA", "bank", "--opening", "10"], workdir)
    out = workdir / "exports"
    out.mkdir()
    proc = run_cli(["tx", "export", "--account", bca["id"], "--output-dir", str(out)], workdir)
    assert proc.returncode == 0, proc.stderr
    (exported,) = out.iterdir()
    assert exported.name.startswith(f"statement_{bca['id']}_")
    lines = exported.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Date,Kind,Account,Category,Amount,Currency,Note"
    assert len(lines) == 2


@pytest.mark.parametrize(
    "args",
    [
        ["account", "add", "X", "piggy-bank"],
        ["account", "add", "X", "bank", "--currency", "rupiah"],
        ["account", "get", "missing"],
        ["tx", "add", "missing", "income", "10"],
        ["tx", "add", "missing", "income", "ten"],
        ["tx", "list", "--from", "03/01/2026"],
    ],
)
def test_errors_exit_with_code_2(workdir: Path, args: list[str]):
    proc = run_cli(args, workdir)
    assert proc.returncode == 2
    assert "[ERROR]" in proc.stderr


def test_missing_tenant_is_a_usage_error(workdir: Path):
    proc = run_cli(["account", "list"], workdir, tenant=None)
    assert proc.returncode == 2
