# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Exception classes for metaprobe

This module defines the error taxonomy shared by every decoder.
Decoders raise these while walking a structure; the walkers catch them
at unit boundaries and render them as inline diagnostics.

Copyright 2025 DNAi inc.
"""


class MetaProbeError(Exception):
    """
    Base exception for all metaprobe errors.
    
    All metaprobe exceptions inherit from this class, allowing
    catch-all error handling at unit and file boundaries.
    """
    # Printed ahead of the message in diagnostics; None prints the message alone
    category = None

    def __init__(self, message: str = ""):
        """
        Initialize the exception with an optional error message.
        
        Args:
            message: Descriptive error message explaining what went wrong
        """
        self.message = message
        super().__init__(message)

    def describe(self) -> str:
        """Return the message prefixed with the error category."""
        if self.category:
            return f"{self.category}: {self.message}"
        return self.message


class OutOfRangeError(MetaProbeError):
    """
    Raised when an offset or length would read outside a byte range.
    
    This exception is raised when:
    - An IFD value offset points past the end of the TIFF data
    - A negative offset or length is requested
    - A nested range does not fit inside its parent
    """
    category = "OutOfRange"


class TruncatedError(OutOfRangeError):
    """
    Raised when fewer bytes are available than a structure declares.
    
    A read that starts inside a byte range but runs past its end is a
    truncation rather than a wild offset, so this is a narrower kind of
    OutOfRangeError.
    """
    category = "Truncated"


class InvalidHeaderError(MetaProbeError):
    """
    Raised when a magic number, signature or version does not match.
    
    This exception is raised when:
    - A TIFF header has neither II nor MM byte order
    - A JPEG file has no Start of Image marker
    - An ID3 tag header has an invalid version or size byte
    - A MIDI header chunk is not exactly 6 bytes
    """
    category = "InvalidHeader"


class MalformedStructureError(MetaProbeError):
    """
    Raised when a structure is internally inconsistent.
    
    This exception is raised when:
    - A directory holds more than one Exif sub-IFD pointer
    - A box length is smaller than its own header
    - A vendor chunk's value lengths do not add up to its entry length
    - A MIDI data byte appears with no running status
    """
    category = "MalformedStructure"


class UnsupportedFormatError(MetaProbeError):
    """
    Raised when no decoder exists for a file's signature.
    """
    pass
