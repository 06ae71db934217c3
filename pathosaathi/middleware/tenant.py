"""
Tenant Middleware

Classifies every request by hostname and attaches an immutable TenantContext
to request.state.tenant.

ROUTING:
- pathosaathi.in, www/app/admin/api.pathosaathi.in, localhost -> ROOT (main domain)
- apollo.pathosaathi.in -> PARTNER with subdomain "apollo"
- lab.apollo.com -> PARTNER with that custom domain
- anything else -> ROOT, not a main domain

Resolution never fails the request: lookup errors are logged and the
request continues as ROOT on a non-main domain, which the auth domain policy
then rejects for anything sensitive.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse
import logging
import re

from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import ROOT_TENANT

logger = logging.getLogger(__name__)

LOCAL_HOSTS = ("localhost", "127.0.0.1")
MAIN_SUBDOMAINS = ("www", "app", "admin", "api")
RESERVED_SUBDOMAINS = ("www", "app", "admin", "api", "ftp", "mail", "smtp", "pop", "imap")

SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9-]+$")
CUSTOM_DOMAIN_PATTERN = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$", re.IGNORECASE)


class TenantKind(str, Enum):
    ROOT = "ROOT"
    PARTNER = "PARTNER"


@dataclass(frozen=True)
class TenantContext:
    kind: TenantKind
    hostname: str
    is_main_domain: bool
    subdomain: Optional[str] = None
    custom_domain: Optional[str] = None
    partner: Any = None
    branding: Any = None

    @property
    def is_partner(self) -> bool:
        return self.kind == TenantKind.PARTNER

    @property
    def partner_id(self) -> Optional[str]:
        return self.partner.id if self.partner is not None else None

    @property
    def tenant_prefix(self) -> str:
        if self.partner is not None:
            return self.partner.tenant_prefix
        return ROOT_TENANT

    def to_info(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "hostname": self.hostname,
            "is_main_domain": self.is_main_domain,
            "subdomain": self.subdomain,
            "custom_domain": self.custom_domain,
            "partner_id": self.partner_id,
        }


def extract_hostname(headers: Mapping[str, str]) -> str:
    """Host header without port, else the Origin's host, else localhost."""
    host = headers.get("host")
    if host:
        return host.split(":")[0].strip().lower()

    origin = headers.get("origin")
    if origin:
        parsed = urlparse(origin)
        if parsed.hostname:
            return parsed.hostname.lower()

    return "localhost"


def validate_subdomain(subdomain: Optional[str], allow_app: bool = False) -> Tuple[bool, Optional[str]]:
    """Check a partner subdomain label. "app" is allowed for root partners only."""
    if not subdomain:
        return False, "Subdomain is required"
    if len(subdomain) > 63:
        return False, "Subdomain must be 1-63 characters"
    if not SUBDOMAIN_PATTERN.match(subdomain):
        return False, "Subdomain can only contain lowercase letters, numbers, and hyphens"
    if subdomain in RESERVED_SUBDOMAINS and not (allow_app and subdomain == "app"):
        return False, f"'{subdomain}' is a reserved subdomain"
    if subdomain.startswith("-") or subdomain.endswith("-"):
        return False, "Subdomain cannot start or end with a hyphen"
    return True, None


def validate_custom_domain(domain: Optional[str], platform_domain: str) -> Tuple[bool, Optional[str]]:
    if not domain:
        return False, "Domain is required"
    if not CUSTOM_DOMAIN_PATTERN.match(domain):
        return False, "Invalid domain format"
    if domain.lower() in (platform_domain, f"app.{platform_domain}", f"admin.{platform_domain}"):
        return False, "Cannot use platform domains"
    return True, None


def generate_subdomain_url(subdomain: str, base_url: str) -> str:
    """https://pathosaathi.in + "apollo" -> https://apollo.pathosaathi.in"""
    parsed = urlparse(base_url)
    scheme = parsed.scheme or "https"
    netloc = parsed.netloc or parsed.path
    return f"{scheme}://{subdomain}.{netloc}"


class TenantResolver:
    def __init__(self, models: ModelRouter, platform_domain: str):
        self.models = models
        self.platform_domain = platform_domain.lower()

    @property
    def main_domains(self) -> Tuple[str, ...]:
        subdomains = tuple(f"{label}.{self.platform_domain}" for label in MAIN_SUBDOMAINS)
        return (self.platform_domain,) + subdomains + LOCAL_HOSTS

    def is_main_domain(self, hostname: str) -> bool:
        return (hostname or "").lower() in self.main_domains

    def extract_subdomain(self, hostname: str) -> Optional[str]:
        hostname = (hostname or "").lower()
        parts = hostname.split(".")

        if hostname not in LOCAL_HOSTS and any(local in hostname for local in LOCAL_HOSTS):
            # apollo.localhost -> apollo
            if len(parts) >= 2 and parts[0] not in ("www", "localhost"):
                return parts[0]
            return None

        if len(parts) >= 3 and parts[0] not in MAIN_SUBDOMAINS:
            return parts[0]
        return None

    def find_partner(self, db: Session, hostname: str):
        """Active partner owning `hostname`: custom domain, subdomain, then domain fallback."""
        Partner = self.models.get(ROOT_TENANT, "Partner")
        active = db.query(Partner).filter(Partner.is_active.is_(True))

        partner = active.filter(Partner.custom_domain == hostname).first()
        if partner is not None:
            return partner

        subdomain = self.extract_subdomain(hostname)
        if subdomain:
            partner = active.filter(Partner.subdomain == subdomain).first()
            if partner is not None:
                return partner

        return self.find_by_domain(db, hostname)

    def find_by_domain(self, db: Session, hostname: str):
        Partner = self.models.get(ROOT_TENANT, "Partner")
        active = db.query(Partner).filter(Partner.is_active.is_(True))

        partner = active.filter(Partner.custom_domain == hostname).first()
        if partner is not None:
            return partner

        parts = hostname.split(".")
        if len(parts) > 1:
            return active.filter(Partner.subdomain == parts[0]).first()
        return None

    def load_branding(self, db: Session, partner):
        if partner is None or not partner.branding_id:
            return None
        Branding = self.models.get(ROOT_TENANT, "Branding")
        return db.query(Branding).filter(Branding.id == partner.branding_id).first()

    def resolve(self, db: Session, hostname: str) -> TenantContext:
        hostname = (hostname or "localhost").lower()
        try:
            if self.is_main_domain(hostname):
                return TenantContext(kind=TenantKind.ROOT, hostname=hostname, is_main_domain=True)

            partner = self.find_partner(db, hostname)
            if partner is None:
                return TenantContext(kind=TenantKind.ROOT, hostname=hostname, is_main_domain=False)

            context = TenantContext(
                kind=TenantKind.PARTNER,
                hostname=hostname,
                is_main_domain=False,
                subdomain=partner.subdomain,
                custom_domain=partner.custom_domain,
                partner=partner,
                branding=self.load_branding(db, partner),
            )
            logger.debug(
                f"Resolved partner tenant for {hostname}",
                extra={"hostname": hostname, "partner_id": partner.id, "tenant_prefix": partner.tenant_prefix},
            )
            return context

        except Exception:
            # Resolution must never fail a request
            logger.error(f"Tenant resolution failed for {hostname}", exc_info=True, extra={"hostname": hostname})
            return TenantContext(kind=TenantKind.ROOT, hostname=hostname, is_main_domain=False)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Resolve the tenant for every request.

    Runs before rate limiting and routing; handlers read the result through
    api.deps.get_tenant_context.
    """

    def __init__(self, app):
        super().__init__(app)
        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
        ]

    async def dispatch(self, request: Request, call_next):
        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        container = request.app.state.container
        hostname = extract_hostname(request.headers)

        db = container.session_factory()
        try:
            request.state.tenant = container.resolver.resolve(db, hostname)
        finally:
            db.close()

        return await call_next(request)
