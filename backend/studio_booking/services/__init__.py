"""
Service layer for the booking engine.

Services own transaction boundaries; repositories below them never commit.
"""
