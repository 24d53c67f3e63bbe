"""
Read-only views of a running engine.
"""
