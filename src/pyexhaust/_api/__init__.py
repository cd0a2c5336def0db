"""Relay module command helpers (Tasmota ``/cm`` endpoint)."""
