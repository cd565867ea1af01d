"""Tests for the agenda scheduling core."""
