"""Utility helpers for studiobridge."""
