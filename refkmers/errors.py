"""Exception types raised by refkmers.

Library code raises these; the CLI entry points catch RefKmersError,
print an ERROR line to stderr and exit with status 1.
"""


class RefKmersError(Exception):
    """Base class for all refkmers errors."""


class ConfigError(RefKmersError, ValueError):
    """Invalid run configuration (k-mer sizes, windowing options, threads)."""


class InputFormatError(RefKmersError, ValueError):
    """Malformed input coordinates, or a chromosome missing where required."""


class ReferenceIOError(RefKmersError, OSError):
    """An input could not be read or an output could not be created."""


class ProcessingError(RefKmersError):
    """A chromosome unit failed while masking, encoding or counting."""

    def __init__(self, chrom, stage, message):
        super().__init__(f"{chrom}: failed during {stage}: {message}")
        self.chrom = chrom
        self.stage = stage
        self.detail = message

    # survive the trip back from a worker process
    def __reduce__(self):
        return (self.__class__, (self.chrom, self.stage, self.detail))
