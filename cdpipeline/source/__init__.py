"""Source provider.

Public API:
    - GitSourceProvider: Shallow git checkout (or local copy) of the application
    - SourceTree: A checked-out tree
    - SourceError: Base exception for source errors
    - CheckoutError: Checkout failed
"""

from .exceptions import CheckoutError, SourceError
from .models import SourceTree
from .provider import GitSourceProvider

__all__ = [
    "GitSourceProvider",
    "SourceTree",
    "SourceError",
    "CheckoutError",
]
