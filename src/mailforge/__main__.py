"""Entry point for ``python -m mailforge``."""

from mailforge.cli.app import app


def main() -> None:
    """Run the mailforge CLI."""
    app()


if __name__ == "__main__":
    main()
