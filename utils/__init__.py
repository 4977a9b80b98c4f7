# ivsens/utils/__init__.py
"""Utility functions module."""
from .auto_constant import CONST_NAME, add_constant
from .data import extract_columns
from .specification import (
    CandidateRegression,
    InstrumentSpecification,
    ModelSpecification,
    SupportBounds,
)

__all__ = [
    "CONST_NAME",
    "CandidateRegression",
    "InstrumentSpecification",
    "ModelSpecification",
    "SupportBounds",
    "add_constant",
    "extract_columns",
]
