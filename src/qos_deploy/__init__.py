"""qos-deploy - local kind cluster deployment tooling for the Quick Order System."""

__version__ = "0.1.0"
