"""Exception hierarchy for fatal deconvolution errors.

Fatal configuration and input errors abort a run and propagate to the caller.
Recoverable numeric states (zero convergence denominator, bad mass axis) are
never raised; they are logged and recorded on the result object instead.
"""


class UniDecError(RuntimeError):
    """Base class for all fatal deconvolution errors."""


class InvalidInputError(UniDecError, ValueError):
    """Spectrum or charge table is unusable (duplicate m/z, zero charge, ...)."""


class InvalidConfigError(UniDecError, ValueError):
    """Configuration value makes the run impossible (zero sigma, unknown mode, ...)."""


class BadSetupError(UniDecError):
    """No grid cell survived acceptance, the run has nothing to deconvolve."""
