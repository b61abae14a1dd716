"""Role-based task pipeline with a capability-gated tool registry."""
