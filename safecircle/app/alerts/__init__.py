"""
Emergency alert lifecycle: countdown timers, the fire path and
best-effort fan-out to emergency contacts.
"""
