"""Tests for the api package."""
