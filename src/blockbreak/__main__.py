"""Main entry point for the blockbreak package."""
from blockbreak.cli import cli


def main():
    """Main entry point function."""
    cli()


if __name__ == "__main__":
    main()
