"""Build Camel K Integrations for CamelSource resources and reconcile them."""

__version__ = "0.1.0"

__all__ = ["flow", "integration", "reconciler"]