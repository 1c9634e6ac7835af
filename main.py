#!/usr/bin/env python3
"""
SubtitleSync Entry Point Script

This script initializes the CLI handler and runs the requested command.
"""

import sys
from subtitlesync.cli import CLIHandler

if __name__ == "__main__":
    if sys.version_info < (3, 9):
        sys.stderr.write("SubtitleSync requires Python 3.9 or later.\n")
        sys.exit(1)

    cli = CLIHandler()
    cli.run()
