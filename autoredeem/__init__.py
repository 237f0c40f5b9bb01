"""Automatic SHiFT code redemption for Borderlands titles."""

__version__ = "1.0.0"
