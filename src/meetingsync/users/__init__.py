"""Users and application settings -- accounts, roles, and the settings singleton."""
