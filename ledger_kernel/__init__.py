"""
ledger_kernel -- multi-tenant ledger posting and document lifecycle engine.

Turns AR/AP business documents and manual journals into balanced, immutable
general-ledger journal entries, and reverses them at most once.  All
coordination is delegated to the database transaction: services flush,
callers commit.
"""

__version__ = "0.1.0"
