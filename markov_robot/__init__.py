"""
Markov Robot: a behavior decision engine for an arena-roaming collector robot

A Markov chain proposes, sensor detections overrule, and an action
machine carries the chosen state out while an energy budget runs down.
"""

__version__ = "0.1.0"
