"""
location — Position sampling for the alert lifecycle.

Sub-modules:
    geo       — haversine distance and coordinate rendering
    provider  — permission-aware provider, debounced subscriptions
    tracker   — background tracking into a last-sample slot + sharing sink
"""
