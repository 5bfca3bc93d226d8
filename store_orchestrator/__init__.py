"""
Store Provisioning Orchestrator.

Provisions, upgrades and tears down isolated WooCommerce stores on a
Kubernetes cluster through an admission-controlled task queue.
"""

__version__ = "1.0.0"
