"""Port interfaces for the GPU provisioner."""
