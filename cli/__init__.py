"""Typer command-line client for the telemetry ingestion service; the app lives in ``cli.app``."""
