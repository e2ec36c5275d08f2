"""provisioner — layered environment provisioning pipeline."""

__version__ = "0.1.0"
