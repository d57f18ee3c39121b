"""
Pure domain helpers shared across packages.

NO dependencies on ORM, database, or I/O.
"""

from esg_kernel.domain.clock import Clock, DeterministicClock, SequentialClock, SystemClock

__all__ = ["Clock", "DeterministicClock", "SequentialClock", "SystemClock"]
