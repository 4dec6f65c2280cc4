"""
Notification channel implementations.

Each module exposes ``async send(intent, ...) -> DeliveryAttempt`` and
never raises for delivery problems.
"""
