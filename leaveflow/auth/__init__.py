"""Auth module — JWT bearer tokens and role checks for the HTTP layer."""
