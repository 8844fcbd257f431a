#!/usr/bin/env python3
"""
Entry point for the dashboard CLI.

Run with: python -m dashboard
"""

from .cli import cli

if __name__ == '__main__':
    cli()
