"""CLI entry point.

Allows running the CLI as a module: python -m infobot.cli
"""

from infobot.cli import app

if __name__ == "__main__":
    app()
