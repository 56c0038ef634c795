"""
Realtime WebSocket app.

This app contains:
- A Channels consumer for `/ws/sync/` speaking the map view sync protocol
- An in-memory session registry (works with ALB sticky sessions)
- Role arbitration, view fan-out and presence notifications per session
"""
