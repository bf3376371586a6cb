"""Prune unreachable contexts from kubeconfig files."""

__version__ = "1.0.0"
