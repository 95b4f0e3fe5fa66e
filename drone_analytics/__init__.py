"""Drone analytics API: authentication and authorization core."""
