"""Allow running as ``python -m lapsify``."""

from lapsify.cli import app

if __name__ == "__main__":
    app()
