"""medaka-polish: drive the medaka consensus pipeline over a draft assembly."""

__version__ = "0.3.0"
