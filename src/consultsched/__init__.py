"""Consulting contract scheduling and slot allocation."""
