"""beatsmith · branching shōnen story beats generated on demand."""

__version__ = "0.1.0"
