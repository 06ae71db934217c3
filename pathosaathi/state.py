"""
Application State

Everything process-scoped lives on one AppState: the engine, the model
router and its handle cache, the identifier config cache, the tenant prefix
configs and the login attempt limiter. create_app() stores it on
app.state.container; request code reaches it through api.deps.get_state.

Tests build their own AppState around a throwaway engine.
"""
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine

from pathosaathi.config import Settings
from pathosaathi.database import create_db_engine, create_session_factory
from pathosaathi.middleware.rate_limit import AttemptLimiter
from pathosaathi.middleware.tenant import TenantResolver
from pathosaathi.models import build_registry
from pathosaathi.services.auth import AuthService
from pathosaathi.services.branding import BrandingService
from pathosaathi.services.identifier_config import ConfigCache, IdentifierConfigStore
from pathosaathi.services.identifiers import IdentifierGenerator
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.partners import PartnerService
from pathosaathi.services.tenant_config import ROOT_TENANT, TenantConfigManager
from pathosaathi.services.users import UserService


class AppState:
    def __init__(self, settings: Settings, engine: Optional[Engine] = None):
        self.settings = settings
        self.engine = engine if engine is not None else create_db_engine(settings)
        self.session_factory = create_session_factory(self.engine)

        self.registry = build_registry()
        self.models = ModelRouter(self.engine, self.registry, root_tenant=ROOT_TENANT)
        self.tenant_configs = TenantConfigManager()
        self.identifier_configs = IdentifierConfigStore(
            self.models,
            ConfigCache(ttl_seconds=settings.IDENTIFIER_CONFIG_CACHE_TTL),
        )
        self.identifiers = IdentifierGenerator(self.models, self.identifier_configs)
        self.login_limiter = AttemptLimiter(window_seconds=3600)

        self.resolver = TenantResolver(self.models, settings.APP_DOMAIN)
        self.auth = AuthService(self.models, settings)
        self.branding = BrandingService(self.models, self.identifiers)
        self.partners = PartnerService(
            self.models,
            self.tenant_configs,
            self.identifier_configs,
            self.identifiers,
            settings.APP_DOMAIN,
        )
        self.users = UserService(self.models, self.identifiers)

    def startup(self) -> None:
        """Create the root tenant's tables and reload partner prefix configs."""
        self.models.initialize_core_models()
        db = self.session_factory()
        try:
            self.partners.load_tenant_configs(db)
        finally:
            db.close()

    def cache_stats(self) -> Dict[str, Any]:
        return {
            "models": self.models.get_cache_stats(),
            "identifier_configs": len(self.identifier_configs.cache),
            "tenant_configs": len(self.tenant_configs.all()),
            "login_limiter_keys": len(self.login_limiter),
        }

    def clear_caches(self) -> Dict[str, int]:
        """Drop cached handles and configs. Mapped classes and tables stay."""
        return {
            "models": self.models.clear_all_cache(),
            "identifier_configs": self.identifier_configs.clear_all_cache(),
        }

    def dispose(self) -> None:
        self.engine.dispose()
