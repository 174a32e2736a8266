"""Domain layer: registry, request and result value objects, gateway contract."""
