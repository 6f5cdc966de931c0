"""Pure numerical rules used by the engines (no state, no locking)."""
