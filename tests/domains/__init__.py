"""Tests for the domains package."""
