"""
Studies: Structured experiments for understanding.

Each study begins with observation, not hypothesis.

Study progression:
1. Single robot - watch one robot spend its battery
"""
