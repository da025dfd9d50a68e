"""
Shared Kernel Module
====================

Generic infrastructure used across the application (logging).

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
