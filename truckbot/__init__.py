"""Pickup truck parts assistant: fitment-aware replies with affiliate links."""
