"""Entry point for running migrations as a module.

Usage:
    python -m docmigrate.migrations migrate --package myapp.migrations
    python -m docmigrate.migrations status --package myapp.migrations
    python -m docmigrate.migrations plan --package myapp.migrations --database accounts
"""

from .cli import main

if __name__ == "__main__":
    main()
