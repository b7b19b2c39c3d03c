"""Core domain: models, config, persistence, services, engine."""
