"""
SLA Module
==========

Bounded context for ticket Service Level Agreement tracking.

Responsibilities:
- Calculate resolution deadlines from the priority/category policy table
- Classify open tickets as on track, imminent or breached
- Re-evaluate all open tickets on a recurring schedule
- Notify an incoming webhook about tickets close to breaching
- Expose SLA status over HTTP for the host ticketing application
"""
