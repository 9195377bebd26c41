"""
svcfwd: always-on kubectl port-forwards on dedicated loopback addresses.

Each configured Kubernetes service gets its own loopback alias, a hosts
entry (``service.namespace`` and ``service.namespace.context``) and a
supervised ``kubectl port-forward`` that reconnects on failure.
"""

__version__ = "0.3.0"
