"""Agreement identifiers, records and the registration service."""
