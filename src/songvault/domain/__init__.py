"""Domain layer - entities, exceptions, ports and pure reconciliation rules."""
