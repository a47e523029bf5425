"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the loan book.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_loan_conservation.py - The settlement asset is never created or destroyed
2. test_loan_atomicity.py - All-or-nothing operation semantics
3. test_loan_determinism.py - Reproducible behavior and content-addressed intents
4. test_late_fee_consistency.py - Views agree with what make_payment charges
5. test_loan_concurrency.py - Same-loan calls serialize; precision is thread-independent

These tests use hypothesis for property-based testing.
"""
