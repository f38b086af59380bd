"""Domain logic: identifiers, payments, agreement registration."""
