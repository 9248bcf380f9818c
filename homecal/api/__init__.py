"""HTTP transport for homecal."""
