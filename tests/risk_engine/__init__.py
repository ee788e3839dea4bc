"""Tests for the risk_engine package."""
