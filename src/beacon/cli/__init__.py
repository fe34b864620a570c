"""Operator CLI for inspecting and flushing persisted telemetry state."""
