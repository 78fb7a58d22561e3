"""
Mixpack CLI - Command-line interface for budget-constrained compression

Usage:
    mixpack optimize <doc>... --budget SECONDS [--estimate] [--report path]
    mixpack pack <doc>... --budget SECONDS [--output-dir dir] [--verify]
    mixpack verify <report.json>
    mixpack info <report.json>

Examples:
    # Plan two logs under a 2 second budget, xz only for the second one
    mixpack optimize access.log error.log=xz --budget 2

    # Estimate from 10 blocks of 1% each and write the artifacts
    mixpack pack data/*.csv --budget 5 --estimate --output-dir out

    # Check that every artifact decodes back to its source
    mixpack verify out/report.json
"""

from .main import main

__all__ = ["main"]
