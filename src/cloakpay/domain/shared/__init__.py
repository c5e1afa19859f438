"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .chain_client_protocol import ChainClientProtocol, LatestBlockhash
from .computation_dispatcher_protocol import ComputationDispatcherProtocol

__all__ = ["ChainClientProtocol", "ComputationDispatcherProtocol", "LatestBlockhash"]
