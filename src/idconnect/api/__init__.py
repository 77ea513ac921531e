"""HTTP transport for the connector operation surface."""
