"""
Integration Tests Package

End-to-end tests of the ledger facade across log, cache and observability.

TEST AXIOMS:
=============
1. Determinism: same events in the same order = identical series
2. Snapshots are transparent: with or without them, reconstruction agrees
3. Explicit failure: rejected appends store nothing
"""
