"""Exception types raised by the reconstruction pipeline."""


class GlobalSfMError(Exception):
    """Base class for all pipeline errors."""


class InputError(GlobalSfMError, ValueError):
    """Input scene or matches cannot support a reconstruction."""


class InsufficientMotionsError(InputError):
    """No usable relative motion survived view graph construction."""


class DisconnectedGraphError(InputError):
    """The view graph has no single dominant connected component."""


class ConfigurationError(GlobalSfMError, ValueError):
    """Invalid method selector or missing required setting."""


class StageOrderError(GlobalSfMError, RuntimeError):
    """A stage was invoked before the state it depends on was resolved."""


class DegenerateGeometryError(GlobalSfMError, RuntimeError):
    """Geometry does not determine a unique solution (e.g. translation scale)."""


class EmptyReconstructionError(GlobalSfMError, RuntimeError):
    """A stage left no posed views or no valid tracks."""
