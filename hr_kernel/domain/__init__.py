"""Pure domain layer of the HR kernel: value objects, enums, protocols, clock."""
