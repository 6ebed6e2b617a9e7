"""HTTP layer of the SSO portal."""
