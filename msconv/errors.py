"""Exception types raised by the codecs.

Only conditions that make a whole file unusable are raised out of
``decode_*``/``encode_*``.  Per-zone and per-field problems are reported
through :class:`msconv.notify.Notifier` instead.
"""

from __future__ import annotations


class ParseError(ValueError):
    """A source file could not be decoded."""


class MalformedContainer(ParseError):
    """Bad block magic, or a block header/payload cut short."""


class UnknownVersion(MalformedContainer):
    """A block declares a version this codec does not read."""


class StructuralError(ParseError):
    """The document decodes but its structure is unusable (missing root, bad pad map...)."""


class EncodeError(ValueError):
    """An instrument could not be written to the destination format."""


class LayerPackingError(EncodeError):
    """A zone does not fit into any keygroup."""


class SampleError(OSError):
    """A referenced sample file is missing or unreadable."""
