"""fx-sync: pull and push low-code platform artifacts."""

__version__ = "1.0.0"
