"""Entry point for `python -m tracker.cli` invocation.

This module enables running the CLI via:
    python -m tracker.cli [command] [options]
"""


def main():
    """Run the CLI with proper program name."""
    from tracker.cli.app import app

    app(prog_name="tracker")


if __name__ == "__main__":
    main()
