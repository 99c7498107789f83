"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the hobby ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. exclusivity.py - Every item lives in exactly one collection
2. fund_consistency.py - Balance, history and derived values agree
3. reversal.py - Reverting a sale exactly undoes it
4. idempotency.py - Repeated or misdirected operations are no-ops
5. document_round_trip.py - Export then import preserves the state

These tests use hypothesis for property-based testing.
"""
