"""Adapters connecting the provisioning core to the node."""
