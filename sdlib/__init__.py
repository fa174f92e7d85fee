"""
Lifecycle management of systemd units, and retrieval of recent journal entries.
"""
