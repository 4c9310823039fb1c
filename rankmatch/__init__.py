"""Ranked match escrow and settlement backend."""
