"""Custom exceptions raised while decoding, subsetting and rendering coverages."""


class CoverageError(Exception):
    """Base class for all pycovmap exceptions."""


class InvalidAxisError(CoverageError, ValueError):
    """Domain axis description is malformed."""


class MissingAxisOrderError(CoverageError, ValueError):
    """Domain has more than one varying axis but no explicit range axis order."""


class InvalidRangeEncodingError(CoverageError, ValueError):
    """Range values or decode parameters are inconsistent."""


class UnsupportedCRSError(CoverageError):
    """Horizontal axes are not referenced to a WGS84-class geodetic system."""


class InvalidConstraintError(CoverageError, ValueError):
    """Subsetting request is malformed or out of bounds."""


class EmptyArrayError(CoverageError, ValueError):
    """Nearest-index search was requested on a zero-length array."""
