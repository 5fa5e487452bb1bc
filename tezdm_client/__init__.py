"""TezDM client: OTP session management and OAuth account connections."""

__version__ = "0.1.0"

__all__ = ["__version__"]
