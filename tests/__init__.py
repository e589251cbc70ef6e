"""
Ledger Test Suite

TEST AXIOMS:
=============
1. Determinism: same log prefix + cutoff = identical series
2. Append-only: nothing stored is ever rewritten
3. Explicit failure: every rejection carries an ErrorCode
"""
