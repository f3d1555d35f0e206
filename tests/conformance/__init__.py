"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the simulator core.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_solvency.py - Balances never go negative except by penalty
2. test_rejection_purity.py - Rejected operations leave the snapshot untouched
3. test_exact_arithmetic.py - Trades move exactly the rounded amounts
4. test_record_roundtrip.py - Stored records reproduce the snapshot exactly

These tests use hypothesis for property-based testing.
"""
