"""Core exceptions shared across fx-sync layers."""
