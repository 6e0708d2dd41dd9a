"""Exceptions raised while reading archives and decoding protocol data.

Every failure is terminal for the archive being read: a truncated or
mismatched read leaves the bit cursor misaligned, so callers should skip
the whole replay rather than try to resume.
"""


class ReplayError(Exception):
    """Base class for all archive and protocol decoding failures."""


class TruncatedError(ReplayError, EOFError):
    """The buffer ran out of bytes or bits in the middle of a read."""


class CorruptedError(ReplayError, ValueError):
    """The data does not match the archive format or the protocol schema."""


class UnsupportedCompressionError(ReplayError, NotImplementedError):
    """A sub-file uses a compression method this reader does not handle."""


class UnsupportedLayoutError(ReplayError, NotImplementedError):
    """A sub-file is encrypted or split into sectors."""


class SchemaError(ReplayError, ValueError):
    """A protocol schema asset is malformed."""


class UnknownProtocolError(ReplayError, LookupError):
    """No protocol schema is available for the requested build."""
