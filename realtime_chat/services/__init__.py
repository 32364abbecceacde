"""
Services layer: the room coordination engine and its collaborators.

- identity: handshake credential -> session identity
- persistence: optional durable store for room metadata and history
- room_registry: in-memory rooms and members
- presence: join/leave/typing notifications
- message_pipeline: message broadcast with fire-and-forget persistence
"""
