"""HTTP and WebSocket surface of the notification server."""
