"""
Core components of SignalRelay: wire protocol, logging and the relay server.
"""
