"""Authorization, session, webhook and app proxy gateway for a commerce platform app."""

__version__ = "0.1.0"
