"""Shared binary reading helpers."""

from .binary import BinaryReader, BitReader

__all__ = ["BinaryReader", "BitReader"]
