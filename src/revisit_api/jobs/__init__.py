"""Recurring job entrypoints for the loyalty program."""

__all__ = ["loyalty"]
