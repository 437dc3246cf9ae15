"""
bingrep Module Entry Point
===========================

Allows running the bingrep CLI via: python -m bingrep
"""

from bingrep.cli import main

if __name__ == "__main__":
    main()
