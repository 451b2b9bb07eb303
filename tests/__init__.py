"""Slotbook test suite."""
