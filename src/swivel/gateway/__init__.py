"""Connection gateway for swivel.

The realtime transport boundary: a FastAPI application whose WebSocket
route turns connects, inbound frames and disconnects into session
manager calls, plus an HTTP health probe.
"""
