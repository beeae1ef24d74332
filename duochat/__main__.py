"""Entry point for running duochat as a module: python -m duochat."""

from duochat.cli.main import app

if __name__ == "__main__":
    app()
