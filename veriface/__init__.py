"""VeriFace: selfie hand-off and AI-assisted identity verification."""

__version__ = "1.0.0"
