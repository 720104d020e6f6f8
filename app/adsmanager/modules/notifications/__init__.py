"""
In-app notifications.

Notifications are rows only. Channel preferences (email/push per category)
decide whether a row is written at all; nothing is dispatched externally.
"""
