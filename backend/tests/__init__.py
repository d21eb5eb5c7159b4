"""
Test Suite

To run tests (from the repository root):
    pytest
    pytest backend/tests/test_transition_engine.py
"""
