"""Supascale -- manage multiple self-hosted Supabase instances on one host."""

__version__ = "0.1.0"
