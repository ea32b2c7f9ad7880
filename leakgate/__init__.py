"""
LeakGate - local pre-commit secret-leak gate

Installs a git pre-commit hook that scans staged content for secrets:
- Pluggable detectors (built-in patterns and entropy, gitleaks, detect-secrets)
- A reviewed-findings baseline that suppresses accepted noise
- Idempotent installation of the hook and repository boilerplate
- Self-verification that the installed gate really blocks a secret
"""

__version__ = "1.0.0"
__author__ = "LeakGate Contributors"


__all__ = [
    "__version__",
]
