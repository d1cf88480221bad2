"""freeco -- moderation backend for a classifieds marketplace."""

__version__ = "0.1.0"
