"""Allow ``python -m svcfwd``."""

from svcfwd.cli.main import app

if __name__ == "__main__":
    app()
