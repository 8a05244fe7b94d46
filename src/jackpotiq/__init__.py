"""JackpotIQ device authentication client."""
