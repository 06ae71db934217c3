"""
PathoSaathi API

Multi-tenant backend for diagnostics labs: partner onboarding, per-tenant
data tables, human-readable identifiers, domain-bound authentication and
partner branding.
"""

__version__ = "1.0.0"
