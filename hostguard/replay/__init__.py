"""
Operator-invoked replay of logged transactions.
"""

from .runner import HostExecutor, ReplayStep

__all__ = [
    "HostExecutor",
    "ReplayStep",
]
