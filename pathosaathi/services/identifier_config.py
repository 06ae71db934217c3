"""
Tenant Identifier Configuration Store

Per-tenant identifier formats, persisted as one
PartnerIdentifierConfiguration row per tenant in PS_ROOT. Lookups go through
a short-TTL cache; writes invalidate the affected keys.

Lookup order for (tenant, model):
1. cached value
2. record.configurations[model]
3. built-in default for the model with the record's global prefix
4. built-in default with a prefix derived from the tenant prefix
"""
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import logging
import time

from sqlalchemy.orm import Session

from pathosaathi.core.exceptions import NotFoundError, ValidationError
from pathosaathi.services.identifier_formats import (
    IDENTIFIER_TEMPLATES,
    PREFIX_PATTERN,
    IdentifierConfig,
    default_identifier_config,
    derive_tenant_identifier_prefix,
    validate_identifier_config,
)
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import ROOT_TENANT

logger = logging.getLogger(__name__)

CONFIG_ENTITY = "PartnerIdentifierConfiguration"


class ConfigCache:
    """TTL cache keyed "tenant:model"."""

    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, IdentifierConfig]] = {}
        self._lock = Lock()

    @staticmethod
    def key(tenant_prefix: str, model_name: str) -> str:
        return f"{tenant_prefix}:{model_name}"

    def get(self, tenant_prefix: str, model_name: str) -> Optional[IdentifierConfig]:
        entry = self._entries.get(self.key(tenant_prefix, model_name))
        if entry is None:
            return None
        stored_at, config = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return config

    def set(self, tenant_prefix: str, model_name: str, config: IdentifierConfig) -> None:
        with self._lock:
            self._entries[self.key(tenant_prefix, model_name)] = (self._clock(), config)

    def invalidate(self, tenant_prefix: str, model_name: str) -> None:
        with self._lock:
            self._entries.pop(self.key(tenant_prefix, model_name), None)

    def invalidate_tenant(self, tenant_prefix: str) -> None:
        marker = f"{tenant_prefix}:"
        with self._lock:
            for key in [k for k in self._entries if k.startswith(marker)]:
                del self._entries[key]

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


class IdentifierConfigStore:
    def __init__(self, models: ModelRouter, cache: ConfigCache):
        self.models = models
        self.cache = cache

    @property
    def model(self):
        return self.models.get(ROOT_TENANT, CONFIG_ENTITY)

    def find_by_tenant_prefix(self, db: Session, tenant_prefix: str):
        Config = self.model
        return db.query(Config).filter(
            Config.tenant_prefix == tenant_prefix,
            Config.is_active.is_(True),
        ).first()

    def find_by_partner(self, db: Session, partner_id: str):
        Config = self.model
        return db.query(Config).filter(
            Config.partner_id == partner_id,
            Config.is_active.is_(True),
        ).first()

    def get_full_configuration(self, db: Session, tenant_prefix: str):
        return self.find_by_tenant_prefix(db, tenant_prefix)

    def _record_or_404(self, db: Session, tenant_prefix: str):
        record = self.find_by_tenant_prefix(db, tenant_prefix)
        if record is None:
            raise NotFoundError(f"No identifier configuration for tenant {tenant_prefix}")
        return record

    @staticmethod
    def resolve_config(record, tenant_prefix: str, model_name: str) -> IdentifierConfig:
        if record is None:
            return default_identifier_config(model_name, derive_tenant_identifier_prefix(tenant_prefix))
        default = default_identifier_config(model_name, record.global_prefix)
        stored = (record.configurations or {}).get(model_name)
        if stored:
            return IdentifierConfig.from_dict(stored, base=default)
        return default

    def get_config(self, db: Session, tenant_prefix: str, model_name: str) -> IdentifierConfig:
        cached = self.cache.get(tenant_prefix, model_name)
        if cached is not None:
            return cached

        record = self.find_by_tenant_prefix(db, tenant_prefix)
        config = self.resolve_config(record, tenant_prefix, model_name)
        self.cache.set(tenant_prefix, model_name, config)
        return config

    def create_default_configuration(
        self,
        db: Session,
        tenant_prefix: str,
        partner_id: Optional[str],
        partner_name: str,
        global_prefix: str,
        created_by: str,
        identifier_factory: Optional[Callable[[], str]] = None,
    ):
        """Create the tenant's configuration record, or return the existing one."""
        existing = self.find_by_tenant_prefix(db, tenant_prefix)
        if existing is not None:
            return existing

        global_prefix = (global_prefix or "PS").upper()
        if not PREFIX_PATTERN.match(global_prefix):
            raise ValidationError("Global prefix must be 1-10 uppercase letters or digits")

        record = self.model(
            identifier=identifier_factory() if identifier_factory else None,
            tenant_prefix=tenant_prefix,
            partner_id=partner_id,
            partner_name=partner_name,
            global_prefix=global_prefix,
            configurations={},
            change_history=[],
            total_identifiers_generated=0,
            configuration_changes=0,
            is_active=True,
        )
        record.record_change("Initial configuration created with default values", created_by)
        db.add(record)
        db.commit()
        self.cache.invalidate_tenant(tenant_prefix)

        logger.info(f"Identifier configuration created for {tenant_prefix}", extra={"tenant_prefix": tenant_prefix})
        return record

    def set_model_config(
        self,
        db: Session,
        tenant_prefix: str,
        model_name: str,
        changes: Mapping[str, Any],
        modified_by: str,
    ) -> IdentifierConfig:
        record = self._record_or_404(db, tenant_prefix)

        current = self.resolve_config(record, tenant_prefix, model_name)
        updated = current.merged(changes)
        errors = validate_identifier_config(updated)
        if errors:
            raise ValidationError(f"Invalid {model_name} identifier configuration", details=errors)

        configurations = dict(record.configurations or {})
        configurations[model_name] = updated.to_dict()
        record.configurations = configurations
        record.record_change(f"Updated {model_name} configuration", modified_by)
        db.commit()

        self.cache.invalidate(tenant_prefix, model_name)
        return updated

    def apply_template(self, db: Session, tenant_prefix: str, template_name: str, modified_by: str):
        template = IDENTIFIER_TEMPLATES.get(template_name)
        if template is None:
            raise ValidationError(
                f"Unknown identifier template: {template_name}",
                details={"available": sorted(IDENTIFIER_TEMPLATES)},
            )

        record = self._record_or_404(db, tenant_prefix)
        configurations = dict(record.configurations or {})
        for model_name, values in template.items():
            configurations[model_name] = {**values, "prefix": record.global_prefix}

        record.configurations = configurations
        record.applied_template = template_name
        record.record_change(f"Applied template: {template_name}", modified_by)
        db.commit()

        self.cache.invalidate_tenant(tenant_prefix)
        return record

    def update_usage_stats(self, db: Session, tenant_prefix: str, increment: int = 1, now: Optional[datetime] = None) -> None:
        """Bump generation stats inside the caller's transaction."""
        Config = self.model
        db.query(Config).filter(
            Config.tenant_prefix == tenant_prefix,
            Config.is_active.is_(True),
        ).update(
            {
                Config.total_identifiers_generated: Config.total_identifiers_generated + increment,
                Config.last_used: now or datetime.utcnow(),
            },
            synchronize_session=False,
        )

    @staticmethod
    def validate_configuration(record) -> Tuple[bool, List[str]]:
        errors = []
        if not record.global_prefix:
            errors.append("Global prefix is required")
        elif not PREFIX_PATTERN.match(record.global_prefix):
            errors.append("Global prefix must be 1-10 uppercase letters or digits")

        for model_name, stored in (record.configurations or {}).items():
            counter_placeholder = any(p in (stored.get("format") or "") for p in ("{COUNTER}", "{TODAYS_ENTRY}"))
            if not stored.get("prefix"):
                errors.append(f"{model_name}: Prefix is required")
            if not counter_placeholder:
                errors.append(f"{model_name}: Format must include {{COUNTER}} or {{TODAYS_ENTRY}}")
            length = stored.get("counter_length")
            if not isinstance(length, int) or not 1 <= length <= 10:
                errors.append(f"{model_name}: Counter length must be between 1 and 10")

        return not errors, errors

    def clear_all_cache(self) -> int:
        count = self.cache.clear()
        logger.info(f"Identifier configuration cache cleared ({count} entries)")
        return count
