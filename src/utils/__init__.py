"""Utilities package for the back office application."""
