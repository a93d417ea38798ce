"""
HR Helpdesk
===========

Ticket routing, SLA, escalation and resolution lifecycle engine for an
internal HR service desk.
"""

__version__ = "1.0.0"
