"""Entry point for ``python -m reconciler``."""

from reconciler.cli.app import app

if __name__ == "__main__":
    app()
