"""
Backend package for the portfolio site API.

This package provides a FastAPI application for projects, contact
messages and admin sessions, with database and cache abstractions so the
service runs against Postgres/Redis in production and in-memory backends
in development and tests.
"""
