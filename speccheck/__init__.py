"""speccheck: Spectre / Meltdown mitigation detection for RHEL kernels."""

__version__ = "3.3.0"
