"""Keep the latest production paperwork from Gmail filed in Drive."""

__version__ = "0.3.0"
