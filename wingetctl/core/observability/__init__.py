"""Observability — logging setup and log sanitising."""
