"""User profiles and last-known presence status."""
