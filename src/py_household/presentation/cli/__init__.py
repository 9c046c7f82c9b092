"""Typer command-line interface for the household ledger."""
