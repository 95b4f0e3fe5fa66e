"""Authentication: credentials, tokens, rate limiting and access control."""
