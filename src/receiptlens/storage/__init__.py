"""Storage adapters for receipt images and extraction records."""
