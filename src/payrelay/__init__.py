"""Payment webhook relay core: sessions, reconciliation and access grants."""

__version__ = "0.1.0"
