"""Discord-facing layer: cogs registering commands and listeners."""
