"""Application configuration: YAML-backed settings and typed section accessors."""
