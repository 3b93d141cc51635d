"""Discord presentation helpers: embeds, buttons and modals."""
