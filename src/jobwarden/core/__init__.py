"""Core primitives shared across jobwarden."""
