"""
Tenant Prefixes

A tenant prefix is the namespace of a partner's tables ("PS_APOLLOLA_1A2B")
and the root tenant is PS_ROOT. Prefixes are derived once at partner
onboarding and stored on the Partner row; TenantConfigManager keeps the
derived settings for partners onboarded by this process.
"""
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Optional, Tuple
import re

ROOT_TENANT = "PS_ROOT"
DEFAULT_IDENTIFIER_PREFIX = "PS"

TENANT_PREFIX_PATTERN = re.compile(r"^[A-Z0-9_]{3,25}$")


def _alphanumeric(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "", value or "").upper()


def generate_partner_tenant_prefix(
    partner_name: str,
    partner_code: str,
    custom_prefix: Optional[str] = None,
) -> str:
    """
    Derive a partner's tenant prefix.

    "Apollo Labs", "1a2b..." -> "PS_APOLLOLA_1A2B"
    custom "apollo-x", "1a2b..." -> "APOLLOX_1A2B"
    """
    code = (partner_code or "")[:4].upper()
    if custom_prefix:
        return f"{_alphanumeric(custom_prefix)[:10]}_{code}"
    return f"PS_{_alphanumeric(partner_name)[:8]}_{code}"


def is_valid_tenant_prefix(prefix: str) -> bool:
    return bool(prefix) and bool(TENANT_PREFIX_PATTERN.match(prefix))


def derive_identifier_prefix(partner_name: str, custom_prefix: Optional[str] = None) -> str:
    """Prefix used in a partner's identifiers, at most 10 alphanumerics."""
    if custom_prefix:
        return _alphanumeric(custom_prefix)[:10] or DEFAULT_IDENTIFIER_PREFIX
    return _alphanumeric(partner_name)[:8] or DEFAULT_IDENTIFIER_PREFIX


@dataclass(frozen=True)
class TenantPrefixConfig:
    collection_prefix: str
    identifier_prefix: str
    company_name: str
    custom_domain: Optional[str] = None


class TenantConfigManager:
    """Process-scoped map of tenant prefix -> TenantPrefixConfig."""

    def __init__(self):
        self._configs: Dict[str, TenantPrefixConfig] = {}
        self._lock = Lock()

    def set(self, tenant_prefix: str, config: TenantPrefixConfig) -> None:
        with self._lock:
            self._configs[tenant_prefix] = config

    def get(self, tenant_prefix: str) -> Optional[TenantPrefixConfig]:
        return self._configs.get(tenant_prefix)

    def get_identifier_prefix(self, tenant_prefix: str) -> str:
        config = self._configs.get(tenant_prefix)
        return config.identifier_prefix if config else DEFAULT_IDENTIFIER_PREFIX

    def all(self) -> Dict[str, TenantPrefixConfig]:
        return dict(self._configs)

    def remove(self, tenant_prefix: str) -> None:
        with self._lock:
            self._configs.pop(tenant_prefix, None)

    def clear(self) -> None:
        with self._lock:
            self._configs.clear()


def initialize_partner_tenant(
    manager: TenantConfigManager,
    partner_name: str,
    partner_code: str,
    custom_identifier_prefix: Optional[str] = None,
    custom_collection_prefix: Optional[str] = None,
    custom_domain: Optional[str] = None,
) -> Tuple[str, TenantPrefixConfig]:
    """Derive and register the tenant prefix config for a new partner."""
    tenant_prefix = generate_partner_tenant_prefix(partner_name, partner_code, custom_collection_prefix)
    config = TenantPrefixConfig(
        collection_prefix=tenant_prefix,
        identifier_prefix=derive_identifier_prefix(partner_name, custom_identifier_prefix),
        company_name=partner_name,
        custom_domain=custom_domain,
    )
    manager.set(tenant_prefix, config)
    return tenant_prefix, config
