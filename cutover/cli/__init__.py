"""Cutover CLI: Typer-based command-line interface.

Provides the ``cutover`` command with subcommands for running the demo
pipeline, browsing run history, showing the last successful deploy and
verifying ledger integrity.

All output uses Rich for formatted terminal display.
"""
