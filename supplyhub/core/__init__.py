"""
Core package for shared utilities.

Configuration, logging, security helpers and the application error
taxonomy used across the backend.
"""
