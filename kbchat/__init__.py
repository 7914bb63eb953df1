"""Knowledge-base chat: retrieval-augmented answers over uploaded documents."""

__version__ = "0.1.0"
