"""
Real-time ERC-721 transfer monitor.

Subscribes to Transfer logs over a WebSocket JSON-RPC connection, decodes and
classifies them (mint / burn / transfer) and reports each one.
"""

__version__ = "0.1.0"
