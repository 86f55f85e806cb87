"""Entry point for add-timecode.

Usage:
    python -m add_timecode <file> [options]
    python -m add_timecode --watch <folder> [options]
"""

import sys


def main() -> None:
    """Run the command line and exit with its status."""
    from add_timecode.cli import main as cli_main

    sys.exit(cli_main())


if __name__ == "__main__":
    main()
