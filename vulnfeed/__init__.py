"""Collect Red Hat, Rocky, Ubuntu, SUSE and Wolfi security feeds into a queryable advisory store."""

__version__ = "0.1.0"

__all__ = [
    "models",
    "store",
    "vulnerability",
    "redhat_oval_types",
    "redhat_oval_parse",
    "redhat",
    "redhat_oval",
    "wolfi",
    "rocky",
    "ubuntu",
    "suse_cvrf",
    "registry",
]