"""Upload a PDF and chat with it through retrieval-augmented generation."""

__version__ = "0.1.0"
