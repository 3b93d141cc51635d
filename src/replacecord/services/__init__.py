"""Stateful services shared across the bot."""
