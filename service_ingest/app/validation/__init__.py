"""
Token validation package.

Verifies bearer tokens issued by the upstream identity provider:

- Structure and header (key id, asymmetric algorithm).
- Signature against the key resolved from the JWKS cache.
- Expiry against an injectable clock.
- Subject and email claims, mapped onto an `AuthenticatedPrincipal`.

Only standard JOSE/JWT behaviors are assumed, so the provider can be
switched with configuration.
"""
