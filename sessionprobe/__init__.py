"""
SessionProbe: Azure Service Bus session lock conformance probe

Reproduces session locks that outlive their advertised expiry.
"""

__version__ = "0.1.0"

from .core.runtime import ProbeRuntime, RunReport

__all__ = ["ProbeRuntime", "RunReport", "__version__"]
