"""Pure domain layer: value objects, lifecycle tables and ports. ZERO I/O."""
