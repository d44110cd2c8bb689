"""Domain layer: provisioning decisions independent of the host system."""
