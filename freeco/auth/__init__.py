"""Actors and role checks supplied by the upstream identity provider."""
