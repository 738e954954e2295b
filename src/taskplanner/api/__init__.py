"""HTTP and websocket surface of the scheduler."""
