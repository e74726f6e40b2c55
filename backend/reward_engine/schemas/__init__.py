"""Response and request schemas."""
