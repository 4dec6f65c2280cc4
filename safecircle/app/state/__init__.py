"""
state — Local client-side state.

Sub-modules:
    models     — Contact, Alert, AppSettings, User records
    storage    — durable key-value backends (memory, JSON file, Redis)
    stores     — per-slice stores with validated, write-then-swap mutations
    container  — process-wide container, rehydration, persist whitelist
    session    — sign-in / sign-out / profile flows
"""
