"""Live WebSocket connections: registry, transport and broadcast fan-out."""
