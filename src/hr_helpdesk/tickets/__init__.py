"""
Tickets Module
==============

Bounded context for the HR ticket lifecycle.

Responsibilities:
- Route new tickets to the right HR tier and balance workload
- Derive response/resolution SLA deadlines
- Escalate SLA breaches up the HR Executive -> HR Manager -> HR BP -> VP chain
- Run the resolve / confirm / reopen negotiation with permanent HR closure
- Filter ticket visibility by role, category and confidentiality
"""
