"""Configuration, data models, phase machine and policy layer."""
