"""SSO portal: central sign-in and token hand-off for client applications."""

__version__ = "0.1.0"
