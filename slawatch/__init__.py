"""
SLA Watch
=========

SLA tracking and breach-notification engine for the support-ticket
workflow tool.

Modules:
- sla: deadline calculation, breach classification, monitor loop, notifications
- config: settings and domain constants
- core: exception hierarchy
"""

__version__ = "1.0.0"
