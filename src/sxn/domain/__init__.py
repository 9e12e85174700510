"""Domain layer: rule specs, conditions, and results.

This layer depends only on stdlib and pydantic.
It must never import from rules, engine, security, services, or commands.
"""
