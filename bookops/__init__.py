"""BookOps — sales-territory build planning backend.

Detects and resolves ownership clashes: the same account assigned to
conflicting owners across the builds (planning cycles) of one or more
regions.
"""
