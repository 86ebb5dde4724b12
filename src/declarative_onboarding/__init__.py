"""Declarative onboarding: reconcile a declaration against a live device.

Pipeline:
    declaration -> DeclarationParser -> desired document
    device      -> ConfigFetcher     -> current document (+ original snapshot)
    {desired, current, snapshot} -> DiffEngine -> merged document

The merged document is handed to per-class apply handlers, which are not
part of this package.
"""

__version__ = "0.1.0"
