"""Decide when cluster agents must re-bootstrap: a changed bootstrap kubeconfig or an expired hub certificate."""

__version__ = "0.1.0"
__all__ = ["__version__"]