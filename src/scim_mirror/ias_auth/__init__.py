"""OAuth2 client-credentials tokens for the identity directory."""
