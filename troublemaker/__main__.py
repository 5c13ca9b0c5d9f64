"""Run with: python -m troublemaker [flags] [subcommand ...]"""

from troublemaker.cli import main

if __name__ == "__main__":
    main()
