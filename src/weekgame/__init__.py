"""Weekly decision games: the island vote and the art auction."""

__version__ = "0.1.0"
