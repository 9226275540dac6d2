"""Degrees of separation between film people, built from a TMDB costar graph."""

__version__ = "0.1.0"
