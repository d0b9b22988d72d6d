"""
Entry point for running latency_tester as a module.

Usage: python -m latency_tester [OPTIONS] COMMAND [ARGS]...
"""

from .cli import main

if __name__ == "__main__":
    main()
