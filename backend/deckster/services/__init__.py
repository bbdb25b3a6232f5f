"""Domain services and downstream API clients."""
