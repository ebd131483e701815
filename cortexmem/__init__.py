"""cortexmem: persistent memory fragments archived from assistant transcripts."""

__version__ = "0.3.0"
