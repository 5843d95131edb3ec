"""Network package: WebSocket endpoint, connection registry, dispatcher and game session."""
