"""
bingrep Shared Module
======================

Configuration, logging, console and result models shared by every
bingrep component.
"""

from shared.config import BingrepConfig

__all__ = ["BingrepConfig"]
