"""
Exceptions shared by more than one service.
"""


class ValidationError(ValueError):
    """Input rejected before any request or write was made."""
