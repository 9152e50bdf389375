"""
Arena Scheduler.

Facility booking and program scheduling engine for a sports venue:
recurrence expansion, session materialization, facility booking policy,
conflict detection and booking validation.
"""

__version__ = "0.1.0"
