"""
Tests for the election integrity risk engine, domain services and API.
"""
