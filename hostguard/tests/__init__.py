"""
Test suite for hostguard.
"""
