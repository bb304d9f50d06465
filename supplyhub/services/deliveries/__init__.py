"""Delivery assignment and verification workflow."""
