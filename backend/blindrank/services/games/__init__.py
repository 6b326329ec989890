"""Game domain services: scoring, round timer, lobby and round advancement.

This package contains pure(ish) domain logic that should be imported by
HTTP routes, socket handlers and room sessions, keeping transport concerns
separated from core game mechanics.
"""
