"""
Test suite for SignalRelay.
"""
