# ivsens/core/__init__.py
"""Core computational modules for ivsens."""
from . import inference, linalg

__all__ = ["inference", "linalg"]
