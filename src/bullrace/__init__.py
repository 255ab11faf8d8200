"""
A race timing and leaderboard server for bull pair racing built on asyncio
"""

from __future__ import annotations

import importlib.metadata

__version__ = importlib.metadata.version(__name__)
version = __version__
