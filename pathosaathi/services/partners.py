"""
Partner Onboarding

Creates a partner together with its tenant: prefix, tables and identifier
configuration record. A root partner (is_root_tenant) shares PS_ROOT with
the platform instead of getting tables of its own.

NOTE: Tenant tables are created before any row is written. On PostgreSQL,
CREATE TABLE with a foreign key to PS_ROOT_Partner waits on locks held by
an open transaction that just inserted into that table.
"""
from datetime import datetime
from typing import Optional
import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.orm import Session

from pathosaathi.core.exceptions import ConflictError, NotFoundError, ValidationError
from pathosaathi.middleware.tenant import validate_custom_domain, validate_subdomain
from pathosaathi.models.partner import PARTNER_FEES, ROOT_SUBDOMAIN, PaymentStatus
from pathosaathi.schemas.partner import PartnerCreate
from pathosaathi.services.identifier_config import CONFIG_ENTITY, IdentifierConfigStore
from pathosaathi.services.identifiers import IdentifierGenerator
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import (
    DEFAULT_IDENTIFIER_PREFIX,
    ROOT_TENANT,
    TenantConfigManager,
    TenantPrefixConfig,
    initialize_partner_tenant,
    is_valid_tenant_prefix,
)

logger = logging.getLogger(__name__)


class PartnerService:
    def __init__(
        self,
        models: ModelRouter,
        tenant_configs: TenantConfigManager,
        identifier_configs: IdentifierConfigStore,
        identifiers: IdentifierGenerator,
        platform_domain: str,
    ):
        self.models = models
        self.tenant_configs = tenant_configs
        self.identifier_configs = identifier_configs
        self.identifiers = identifiers
        self.platform_domain = platform_domain.lower()

    @property
    def model(self):
        return self.models.get(ROOT_TENANT, "Partner")

    def get_partner(self, db: Session, partner_id: str):
        Partner = self.model
        partner = db.query(Partner).filter(Partner.id == partner_id).first()
        if partner is None:
            raise NotFoundError("Partner not found")
        return partner

    def _check_domains(self, data: PartnerCreate) -> None:
        if data.subdomain:
            valid, message = validate_subdomain(data.subdomain, allow_app=data.is_root_tenant)
            if not valid:
                raise ValidationError(message, details={"field": "subdomain"})
        if data.custom_domain:
            valid, message = validate_custom_domain(data.custom_domain, self.platform_domain)
            if not valid:
                raise ValidationError(message, details={"field": "custom_domain"})

    def _check_conflicts(self, db: Session, data: PartnerCreate, subdomain: Optional[str], tenant_prefix: str) -> None:
        Partner = self.model
        criteria = [
            Partner.email == data.email.lower(),
            Partner.phone == data.phone,
            Partner.tenant_prefix == tenant_prefix,
        ]
        if subdomain:
            criteria.append(Partner.subdomain == subdomain)
        if data.custom_domain:
            criteria.append(Partner.custom_domain == data.custom_domain.lower())

        existing = db.query(Partner).filter(or_(*criteria)).first()
        if existing is None:
            return

        if existing.tenant_prefix == tenant_prefix:
            field = "tenant_prefix"
        elif existing.email == data.email.lower():
            field = "email"
        elif existing.phone == data.phone:
            field = "phone"
        elif subdomain and existing.subdomain == subdomain:
            field = "subdomain"
        else:
            field = "custom_domain"
        raise ConflictError(f"A partner with this {field} already exists", details={"field": field})

    def create_partner(self, db: Session, data: PartnerCreate, created_by: str):
        """Onboard a partner and its tenant. The partner stays inactive until PAID."""
        self._check_domains(data)

        partner_id = str(uuid.uuid4())
        subdomain = data.subdomain.lower() if data.subdomain else None

        if data.is_root_tenant:
            tenant_prefix = ROOT_TENANT
            subdomain = subdomain or ROOT_SUBDOMAIN
            identifier_prefix = DEFAULT_IDENTIFIER_PREFIX
        else:
            tenant_prefix, prefix_config = initialize_partner_tenant(
                self.tenant_configs,
                data.company_name,
                partner_id.replace("-", ""),
                custom_identifier_prefix=data.custom_identifier_prefix,
                custom_collection_prefix=data.custom_collection_prefix,
                custom_domain=data.custom_domain,
            )
            identifier_prefix = prefix_config.identifier_prefix
            if not is_valid_tenant_prefix(tenant_prefix):
                self.tenant_configs.remove(tenant_prefix)
                raise ValidationError(f"Invalid tenant prefix: {tenant_prefix}")

        try:
            self._check_conflicts(db, data, subdomain, tenant_prefix)
        except ConflictError:
            if not data.is_root_tenant:
                self.tenant_configs.remove(tenant_prefix)
            raise

        if not data.is_root_tenant:
            self.models.create_partner_tenant(tenant_prefix)

        Partner = self.model
        partner = Partner(
            id=partner_id,
            identifier=self.identifiers.next_identifier(db, ROOT_TENANT, "Partner"),
            company_name=data.company_name,
            owner_name=data.owner_name,
            email=data.email.lower(),
            phone=data.phone,
            subdomain=subdomain,
            custom_domain=data.custom_domain.lower() if data.custom_domain else None,
            partner_type=data.partner_type,
            registration_fee=data.registration_fee if data.registration_fee is not None else PARTNER_FEES[data.partner_type],
            paid_status=PaymentStatus.PENDING,
            custom_identifier_prefix=data.custom_identifier_prefix,
            custom_collection_prefix=data.custom_collection_prefix,
            tenant_prefix=tenant_prefix,
            is_root_tenant=data.is_root_tenant,
            gst_number=data.gst_number,
            pan_number=data.pan_number,
            business_type=data.business_type,
        )
        db.add(partner)
        db.flush()

        # Commits the partner together with its configuration record
        self.identifier_configs.create_default_configuration(
            db,
            tenant_prefix=tenant_prefix,
            partner_id=partner.id,
            partner_name=partner.company_name,
            global_prefix=identifier_prefix,
            created_by=created_by,
            identifier_factory=lambda: self.identifiers.next_identifier(db, ROOT_TENANT, CONFIG_ENTITY),
        )

        logger.info(
            f"Partner onboarded: {partner.company_name}",
            extra={"partner_id": partner.id, "tenant_prefix": tenant_prefix},
        )
        return partner

    def update_payment_status(
        self,
        db: Session,
        partner_id: str,
        paid_status: PaymentStatus,
        payment_transaction_id: Optional[str] = None,
    ):
        """Record a payment outcome; the first PAID activates the partner."""
        partner = self.get_partner(db, partner_id)
        partner.paid_status = paid_status
        if payment_transaction_id:
            partner.payment_transaction_id = payment_transaction_id
        if paid_status == PaymentStatus.PAID:
            partner.apply_lifecycle_rules(now=datetime.utcnow())
        db.commit()

        logger.info(
            f"Partner payment status set to {PaymentStatus(paid_status).value}",
            extra={"partner_id": partner.id},
        )
        return partner

    def load_tenant_configs(self, db: Session) -> int:
        """Register every partner's prefix config, e.g. after a restart."""
        Partner = self.model
        count = 0
        for partner in db.query(Partner).filter(Partner.is_root_tenant.is_(False)).all():
            record = self.identifier_configs.find_by_tenant_prefix(db, partner.tenant_prefix)
            self.tenant_configs.set(
                partner.tenant_prefix,
                TenantPrefixConfig(
                    collection_prefix=partner.tenant_prefix,
                    identifier_prefix=record.global_prefix if record is not None else DEFAULT_IDENTIFIER_PREFIX,
                    company_name=partner.company_name,
                    custom_domain=partner.custom_domain,
                ),
            )
            count += 1
        logger.info(f"Loaded {count} partner tenant configurations")
        return count
