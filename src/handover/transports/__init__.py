"""Transports to the systems handover consults.

Brief:
    Each transport raises a subclass of TransportError on failure so the
    dispatcher can contain them uniformly.
"""


class TransportError(Exception):
    """
    Brief: Base class for transport failures.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass
