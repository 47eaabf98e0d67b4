"""Pure domain layer: DTOs, fee and billing arithmetic, validation steps."""
