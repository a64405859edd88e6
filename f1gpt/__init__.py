"""F1GPT: retrieval-augmented Formula 1 chat assistant."""

__version__ = "0.1.0"
