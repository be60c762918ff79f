"""Concrete agent runner backends."""
