"""
vault-init: automated initialization and unsealing for Vault.

Watches a Vault cluster, initializes it exactly once, and unseals it
after every restart. The generated unseal keys and root token are
kept encrypted in a cloud keystore (GCP KMS + GCS, AWS Secrets
Manager, or S3 with a customer-supplied key).
"""

import platform

__version__ = "0.1.0"

USER_AGENT = f"vault-init/{__version__} (python {platform.python_version()})"
