"""Pydantic request and response schemas (camelCase on the wire)."""
