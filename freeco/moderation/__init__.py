"""Moderation workflow: status machine, engine, and role-scoped consoles.

The engine is the only writer of entity status. Both the admin and the
moderator surfaces go through it, so transition rules live in exactly one
place (``status_machine``).
"""
