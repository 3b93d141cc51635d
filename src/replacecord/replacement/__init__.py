"""Replacement request workflow: registry, locator, notifications and the coordinator driving them."""
