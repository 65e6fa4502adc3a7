"""Domain errors for dmngr."""


class DmngrError(RuntimeError):
    """Base class for every failure raised by dmngr."""


class ConfigError(DmngrError):
    """Raised when kubeconfig or the dmngr config file cannot be loaded."""


class NotFoundError(DmngrError):
    """Raised when the requested pod or workload does not exist."""


class GatewayError(DmngrError):
    """Raised on a Kubernetes API or transport failure other than not-found."""


class InvalidResourceTypeError(DmngrError, ValueError):
    """Raised for a workload kind other than deployment or statefulset."""


class RolloutTimeoutError(DmngrError):
    """Raised when a rollout does not converge inside its timeout window."""


class RolloutCancelledError(DmngrError):
    """Raised when a caller cancels a rollout while it is being polled."""


class ParseError(DmngrError):
    """Raised when no usable timestamp can be extracted from pod logs."""
