"""roomrelay: a public/private room chat hub over Reticulum links."""

__version__ = "0.1.0"
