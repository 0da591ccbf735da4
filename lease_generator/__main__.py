"""Entry point for ``python -m lease_generator``"""

from lease_generator.cli.main import app

if __name__ == "__main__":
    app()
