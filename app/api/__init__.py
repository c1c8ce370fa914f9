"""
API module initialization
"""

from . import health, home, tools

__all__ = ["health", "home", "tools"]
