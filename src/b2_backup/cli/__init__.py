"""Command line interface for b2-backup."""
