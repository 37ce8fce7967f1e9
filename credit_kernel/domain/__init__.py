"""Pure domain layer: money values, status rules, DTOs and the clock."""
