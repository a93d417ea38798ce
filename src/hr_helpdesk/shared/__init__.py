"""
Shared Kernel Module
====================

Generic infrastructure used by the tickets bounded context and the API
process: structured logging and HTTP middleware.

DO NOT add routing, SLA or resolution logic to the shared kernel.
"""
