"""
dmngr - Inspect and roll out workloads across Kubernetes contexts
"""

__version__ = "0.3.0"

from .core import DeploymentManager, DmngrError

__all__ = ["DeploymentManager", "DmngrError"]
