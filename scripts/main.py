#!/usr/bin/env python3
"""
Execution entry point for the document ranking program.

Puts the repository root on the import path and runs the CLI.
"""
import sys
import logging
from pathlib import Path
from typing import NoReturn


def setup_project_path() -> Path:
    """Add the repository root to sys.path and return it."""
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


def main() -> NoReturn:
    setup_project_path()
    try:
        from src.docrank.cli import main as run_main
    except ImportError as e:
        logging.basicConfig(level=logging.ERROR, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        logging.error(f"Failed to import docrank: {e}")
        logging.error("Please ensure all dependencies are installed (pip install -e .)")
        sys.exit(1)

    # The CLI configures logging and maps failures to exit codes itself
    run_main()
    sys.exit(0)


if __name__ == "__main__":
    main()
