"""WebSocket endpoint module for termproxy.

The FastAPI application that accepts browser terminal connections,
pairs each one with a remote SSH shell, and serves health and session
diagnostics.
"""
