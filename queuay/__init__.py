"""
Queuay - scheduled and on-demand browser story execution engine.
"""

__version__ = "0.1.0"
