#!/usr/bin/env python3
"""
Command-line entry point for the unsubscriber.

Usage:
    python main.py <command> [options]
"""

from unsubscriber.cli.main import main


if __name__ == '__main__':
    main()
