"""Discubot FastAPI application."""
