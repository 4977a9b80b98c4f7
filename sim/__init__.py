# ivsens/sim/__init__.py
"""Data simulation helpers."""
from .montecarlo import base_specification, simulate_iv_data, uci_coverage

__all__ = ["base_specification", "simulate_iv_data", "uci_coverage"]
