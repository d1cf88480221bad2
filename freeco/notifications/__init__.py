"""Notification records -- persisted for later retrieval, never pushed."""
