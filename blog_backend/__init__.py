"""
Blog backend package.

A FastAPI application for user registration/login with bearer tokens and
CRUD over posts and their comments, backed by SQLAlchemy or an in-memory
store for local runs and tests.
"""
