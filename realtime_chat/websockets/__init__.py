"""
WebSocket realtime chat

- connection_manager: per-connection outboxes and room channels
- auth: handshake credential resolution
- session: per-connection state machine
- handlers: inbound frame routing
- events: event names of the frame envelope
"""
