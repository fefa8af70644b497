"""Main function for sleepwatch."""

from sleepwatch.core import cli


def run_main() -> None:
    """Main entry point to sleepwatch."""
    cli.app()


if __name__ == "__main__":
    cli.app()
