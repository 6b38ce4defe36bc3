"""
Backend package for the disaster report upload API.

This package provides a FastAPI application that stores disaster media in
S3-compatible object storage and keeps the report metadata in a relational
database, with in-memory stand-ins for both so it can run locally.
"""
