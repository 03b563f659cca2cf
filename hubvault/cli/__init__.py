"""Typer applications and console script entry points."""
