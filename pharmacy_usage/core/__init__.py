"""Core domain logic for usage accounting."""
