"""Loyalty job exports."""

from .expiration import run_point_expiration  # noqa: F401

__all__ = ["run_point_expiration"]
