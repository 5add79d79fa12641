"""App usage collector: model app listings, app metadata and usage history."""

__version__ = "0.1.0"
