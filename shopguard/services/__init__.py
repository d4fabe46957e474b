"""Trust & settlement services.

Module-level async functions called by routes and scripts. Each takes the
session (or a session factory when it needs several transactions) explicitly;
the caller owns commit/rollback. Failures surface as shopguard.errors types.
"""
