"""
Environments the robot can be dropped into.

- arena: walled square with pillars, orbs and a charging station
"""

from .arena import Arena, ArenaConfig

__all__ = ["Arena", "ArenaConfig"]
