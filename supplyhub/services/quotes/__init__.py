"""Quote pricing-and-locking workflow."""
