"""
lockgate - lock-based access verification for gated boards and posts
"""

__version__ = "1.0.0"
