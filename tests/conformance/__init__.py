"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the stablecoin engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Token supply and custody accounting
2. atomicity.py - All-or-nothing engine operations
3. solvency.py - Health factors and system-wide collateralization

These tests use hypothesis for property-based testing.
"""
