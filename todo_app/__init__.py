"""Multi-user task tracker with session based authentication."""
