"""Background schedulers for periodic maintenance."""
