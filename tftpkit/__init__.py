"""TFTP client with option negotiation, windowed uploads and simulated packet loss."""

__version__ = "0.1.0"