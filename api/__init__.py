"""
Election Integrity API - thin FastAPI transport over the domain services.
"""
