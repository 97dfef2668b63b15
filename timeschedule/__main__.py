"""
Package entry point.

    python -m timeschedule crawl --once
    python -m timeschedule search "calculus"

Same commands as the `timeschedule` console script; see timeschedule.cli.
"""

from timeschedule.cli import main

if __name__ == "__main__":
    main()
