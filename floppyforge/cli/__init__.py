"""Floppyforge CLI — Typer-based command-line interface.

Provides the ``floppyforge`` command with subcommands for building a floppy
image from files, directories and inline content, and for inspecting
existing images.

All output uses Rich for formatted terminal display.
"""
