# ivsens/output/__init__.py
"""Tables for union bounds and candidate regressions."""
from .summary import bounds_table, candidates_table, first_stage_table

__all__ = [
    "bounds_table",
    "candidates_table",
    "first_stage_table",
]
