"""
Backend package for the 90-day planner API.

Holds the FastAPI application, its SQLAlchemy storage layer, the Google
Calendar sync worker and the per-feature service modules the routes call.
"""
