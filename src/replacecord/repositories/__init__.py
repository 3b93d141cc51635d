"""Repositories: CRUD helpers over the shared SQLite connection."""
