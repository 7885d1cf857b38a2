#!/usr/bin/env python3
"""
Main entry point for running the lokiload CLI as a module.

Usage:
    python3 -m lokiload run --scenario write --url http://localhost:3100
    python3 -m lokiload batch --streams 4 --min-bytes 1MB --max-bytes 2MB
    python3 -m lokiload query --count 10
    python3 -m lokiload status --url http://localhost:3100
    python3 -m lokiload info
"""

from .cli import main

if __name__ == "__main__":
    main()
