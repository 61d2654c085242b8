"""Outbound calls to the commerce platform."""
