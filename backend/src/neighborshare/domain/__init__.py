"""Domain layer: status enums and state machine rules."""
