"""Codeship key rotator — batch AES key rotation across CI projects."""

__version__ = "0.1.0"
