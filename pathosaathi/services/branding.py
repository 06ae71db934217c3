"""
Branding Service

Tenant-aware look and feel: which Branding row applies to a request, the
flattened "simple" view the frontend consumes, and the CSS variable sheet.

Resolution order:
1. Branding attached to the resolved tenant context
2. The partner's own branding reference
3. The platform default (is_default)
4. A default created on the fly
"""
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging
import re

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pathosaathi.core.exceptions import NotFoundError, ValidationError
from pathosaathi.middleware.tenant import TenantContext, TenantKind
from pathosaathi.services.identifiers import IdentifierGenerator
from pathosaathi.services.model_router import ModelRouter
from pathosaathi.services.tenant_config import ROOT_TENANT

logger = logging.getLogger(__name__)

DEFAULT_BRAND_NAME = "PathoSaathi"

DEFAULT_COLORS = {
    "primary": "#1976d2",
    "secondary": "#dc004e",
    "accent": "#00bcd4",
    "background": "#ffffff",
    "surface": "#f5f5f5",
    "text": "#212121",
    "textSecondary": "#757575",
    "success": "#4caf50",
    "warning": "#ff9800",
    "error": "#f44336",
    "info": "#2196f3",
}

DEFAULT_TYPOGRAPHY = {
    "fontFamily": "Roboto, Arial, sans-serif",
    "headingFont": "Roboto, Arial, sans-serif",
    "bodyFont": "Roboto, Arial, sans-serif",
}

DEFAULT_LAYOUT = {
    "borderRadius": 4,
    "spacing": 8,
    "maxWidth": 1200,
}

COLOR_PATTERN = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
REQUIRED_COLORS = ("primary", "secondary", "background", "text")
OPTIONAL_COLORS = ("accent", "surface", "textSecondary", "success", "warning", "error", "info")

# (metadata section, key, css variable, unit) in output order
CSS_VARIABLES = (
    ("colors", "primary", "--color-primary", ""),
    ("colors", "secondary", "--color-secondary", ""),
    ("colors", "accent", "--color-accent", ""),
    ("colors", "background", "--color-background", ""),
    ("colors", "surface", "--color-surface", ""),
    ("colors", "text", "--color-text", ""),
    ("colors", "textSecondary", "--color-text-secondary", ""),
    ("colors", "success", "--color-success", ""),
    ("colors", "warning", "--color-warning", ""),
    ("colors", "error", "--color-error", ""),
    ("colors", "info", "--color-info", ""),
    ("typography", "fontFamily", "--font-family", ""),
    ("typography", "headingFont", "--font-heading", ""),
    ("typography", "bodyFont", "--font-body", ""),
    ("layout", "borderRadius", "--border-radius", "px"),
    ("layout", "spacing", "--spacing-unit", "px"),
    ("layout", "maxWidth", "--max-width", "px"),
)


def default_metadata() -> Dict[str, Any]:
    """Metadata of the platform default branding."""
    typography = deepcopy(DEFAULT_TYPOGRAPHY)
    typography["fontSize"] = {"small": "12px", "medium": "14px", "large": "16px", "xlarge": "18px"}
    layout = deepcopy(DEFAULT_LAYOUT)
    layout["sidebar"] = {"width": 280, "collapsedWidth": 64}
    return {
        "colors": deepcopy(DEFAULT_COLORS),
        "typography": typography,
        "layout": layout,
        "customCSS": "",
    }


def default_simple_branding() -> Dict[str, Any]:
    return {
        "brand_name": DEFAULT_BRAND_NAME,
        "logo_url": None,
        "favicon_url": None,
        "colors": deepcopy(DEFAULT_COLORS),
        "typography": deepcopy(DEFAULT_TYPOGRAPHY),
        "layout": deepcopy(DEFAULT_LAYOUT),
        "tenant_type": TenantKind.ROOT.value,
        "tenant_name": DEFAULT_BRAND_NAME,
        "custom_css": "",
    }


def generate_css_variables(metadata: Optional[Dict[str, Any]]) -> str:
    """
    Render branding metadata as a `:root` block of CSS custom properties.

    Missing or empty values are skipped. Raw customCSS is appended verbatim
    after a blank line.
    """
    metadata = metadata or {}
    css = ":root {\n"
    for section, key, variable, unit in CSS_VARIABLES:
        value = (metadata.get(section) or {}).get(key)
        if value:
            css += f"  {variable}: {value}{unit};\n"
    css += "}\n"

    custom_css = metadata.get("customCSS")
    if custom_css:
        css += "\n" + custom_css
    return css


def validate_colors(colors: Optional[Dict[str, Any]]) -> Tuple[bool, List[str]]:
    colors = colors or {}
    errors = []

    for name in REQUIRED_COLORS:
        value = colors.get(name)
        if not value:
            errors.append(f"{name} color is required")
        elif not COLOR_PATTERN.match(str(value)):
            errors.append(f"{name} must be a valid hex color")

    for name in OPTIONAL_COLORS:
        value = colors.get(name)
        if value and not COLOR_PATTERN.match(str(value)):
            errors.append(f"{name} must be a valid hex color")

    return len(errors) == 0, errors


def validate_branding(
    colors: Optional[Dict[str, Any]] = None,
    typography: Optional[Dict[str, Any]] = None,
    layout: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    errors: List[str] = []
    warnings: List[str] = []

    if colors:
        _, color_errors = validate_colors(colors)
        errors.extend(color_errors)

    if typography:
        font_family = typography.get("fontFamily")
        if font_family and len(font_family) > 100:
            warnings.append("Font family name is very long")

    if layout:
        max_width = layout.get("maxWidth")
        if max_width is not None and not 800 <= max_width <= 2000:
            warnings.append("Max width should be between 800 and 2000 pixels")
        border_radius = layout.get("borderRadius")
        if border_radius is not None and not 0 <= border_radius <= 50:
            errors.append("Border radius should be between 0 and 50 pixels")

    return {"valid": len(errors) == 0, "errors": errors, "warnings": warnings}


def build_preview(
    brand_name: Optional[str] = None,
    logo_url: Optional[str] = None,
    favicon_url: Optional[str] = None,
    colors: Optional[Dict[str, Any]] = None,
    typography: Optional[Dict[str, Any]] = None,
    layout: Optional[Dict[str, Any]] = None,
    custom_css: Optional[str] = None,
) -> Dict[str, Any]:
    """Defaults overlaid with the submitted values, plus the resulting CSS."""
    metadata = {
        "brandName": brand_name,
        "logoUrl": logo_url,
        "faviconUrl": favicon_url,
        "colors": {**DEFAULT_COLORS, **(colors or {})},
        "typography": {**DEFAULT_TYPOGRAPHY, **(typography or {})},
        "layout": {**DEFAULT_LAYOUT, **(layout or {})},
        "customCSS": custom_css,
    }
    return {"branding": metadata, "css": generate_css_variables(metadata)}


@dataclass
class TenantBranding:
    branding: Any
    tenant_info: Dict[str, Any]
    theme: Any = None
    fonts: List[Any] = field(default_factory=list)


class BrandingService:
    def __init__(self, models: ModelRouter, identifiers: IdentifierGenerator):
        self.models = models
        self.identifiers = identifiers

    def _model(self, entity_name: str):
        return self.models.get(ROOT_TENANT, entity_name)

    def _get_partner(self, db: Session, partner_id: str):
        Partner = self._model("Partner")
        partner = db.query(Partner).filter(Partner.id == partner_id).first()
        if partner is None:
            raise NotFoundError("Partner not found")
        return partner

    def _get_branding(self, db: Session, branding_id: Optional[str]):
        if not branding_id:
            return None
        Branding = self._model("Branding")
        return db.query(Branding).filter(Branding.id == branding_id).first()

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def get_default_branding(self, db: Session):
        Branding = self._model("Branding")
        return (
            db.query(Branding)
            .filter(Branding.is_default.is_(True))
            .order_by(Branding.created_at)
            .first()
        )

    def create_default_branding(self, db: Session):
        Branding = self._model("Branding")
        branding = Branding(
            identifier=self.identifiers.next_identifier(db, ROOT_TENANT, "Branding"),
            name=DEFAULT_BRAND_NAME,
            brand_metadata=default_metadata(),
            is_active=True,
            is_default=True,
        )
        db.add(branding)
        db.commit()
        logger.info("Created platform default branding")
        return branding

    def get_or_create_default_branding(self, db: Session):
        return self.get_default_branding(db) or self.create_default_branding(db)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get_active_fonts(self, db: Session) -> List[Any]:
        Font = self._model("Font")
        return db.query(Font).filter(Font.is_active.is_(True)).order_by(Font.name).all()

    def resolve_tenant_branding(self, db: Session, context: TenantContext) -> TenantBranding:
        branding = None
        tenant_name = DEFAULT_BRAND_NAME

        if context.is_partner and context.partner is not None:
            tenant_name = context.partner.company_name
            branding = context.branding or self._get_branding(db, context.partner.branding_id)

        if branding is None:
            branding = self.get_or_create_default_branding(db)

        theme = None
        if branding.theme_id:
            Theme = self._model("Theme")
            theme = db.query(Theme).filter(Theme.id == branding.theme_id).first()

        return TenantBranding(
            branding=branding,
            theme=theme,
            fonts=self.get_active_fonts(db),
            tenant_info={
                "type": context.kind.value,
                "name": tenant_name,
                "subdomain": context.subdomain,
                "custom_domain": context.custom_domain,
            },
        )

    def get_tenant_branding(self, db: Session, context: TenantContext) -> Optional[TenantBranding]:
        """Resolved branding, or None when storage fails."""
        try:
            return self.resolve_tenant_branding(db, context)
        except SQLAlchemyError:
            db.rollback()
            logger.error(
                "Error getting tenant branding",
                exc_info=True,
                extra={"hostname": context.hostname, "partner_id": context.partner_id},
            )
            return None

    def get_simple_branding(self, db: Session, context: TenantContext) -> Dict[str, Any]:
        resolved = self.get_tenant_branding(db, context)
        if resolved is None:
            return default_simple_branding()

        branding = resolved.branding
        metadata = branding.brand_metadata or {}
        logo_url = metadata.get("logoUrl")
        return {
            "brand_name": metadata.get("brandName") or branding.name,
            "logo_url": logo_url if logo_url is not None else branding.logo,
            "favicon_url": metadata.get("faviconUrl"),
            "colors": metadata.get("colors"),
            "typography": metadata.get("typography"),
            "layout": metadata.get("layout"),
            "tenant_type": resolved.tenant_info["type"],
            "tenant_name": resolved.tenant_info["name"],
            "custom_css": metadata.get("customCSS") or "",
        }

    def get_css(self, db: Session, context: TenantContext) -> Tuple[str, bool]:
        """CSS sheet for the request's tenant and whether branding resolved."""
        resolved = self.get_tenant_branding(db, context)
        if resolved is None:
            simple = default_simple_branding()
            metadata = {
                "colors": simple["colors"],
                "typography": simple["typography"],
                "layout": simple["layout"],
                "customCSS": simple["custom_css"],
            }
            return generate_css_variables(metadata), False
        return generate_css_variables(resolved.branding.brand_metadata), True

    # ------------------------------------------------------------------
    # Partner branding
    # ------------------------------------------------------------------

    def get_partner_branding(self, db: Session, partner_id: str):
        partner = self._get_partner(db, partner_id)
        branding = self._get_branding(db, partner.branding_id)
        if branding is None:
            raise NotFoundError("Partner branding not found")
        return branding

    def update_partner_branding(
        self,
        db: Session,
        partner_id: str,
        brand_name: str,
        logo_url: Optional[str] = None,
        favicon_url: Optional[str] = None,
        colors: Optional[Dict[str, Any]] = None,
        typography: Optional[Dict[str, Any]] = None,
        layout: Optional[Dict[str, Any]] = None,
        custom_css: Optional[str] = None,
    ):
        """
        Create or update the partner's own branding.

        A partner still pointing at the platform default gets a new row seeded
        from the default metadata; the default itself is never modified.
        """
        if not brand_name:
            raise ValidationError("Brand name is required")

        if colors:
            valid, errors = validate_colors(colors)
            if not valid:
                raise ValidationError("Invalid color configuration", details={"errors": errors})

        partner = self._get_partner(db, partner_id)

        changes = {
            "colors": colors,
            "typography": typography,
            "layout": layout,
            "customCSS": custom_css,
            "faviconUrl": favicon_url,
            "logoUrl": logo_url,
            "brandName": brand_name,
        }
        changes = {key: value for key, value in changes.items() if value}

        branding = self._get_branding(db, partner.branding_id)
        if branding is None or branding.is_default:
            Branding = self._model("Branding")
            metadata = default_metadata()
            metadata.update(changes)
            branding = Branding(
                identifier=self.identifiers.next_identifier(db, ROOT_TENANT, "Branding"),
                name=brand_name,
                logo=logo_url,
                brand_metadata=metadata,
                partner_id=partner.id,
                is_active=True,
                is_default=False,
            )
            db.add(branding)
            db.flush()
            partner.branding_id = branding.id
            logger.info("Created partner branding", extra={"partner_id": partner.id})
        else:
            metadata = dict(branding.brand_metadata or {})
            metadata.update(changes)
            # Reassign so the JSON column is flagged dirty
            branding.brand_metadata = metadata
            branding.name = brand_name
            if logo_url:
                branding.logo = logo_url
            logger.info("Updated partner branding", extra={"partner_id": partner.id})

        db.commit()
        return branding

    def reset_partner_branding_to_default(self, db: Session, partner_id: str):
        partner = self._get_partner(db, partner_id)
        default = self.get_or_create_default_branding(db)
        partner.branding_id = default.id
        db.commit()
        logger.info("Partner branding reset to default", extra={"partner_id": partner.id})
        return default

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def serialize_branding(branding) -> Dict[str, Any]:
        return {
            "id": branding.id,
            "identifier": branding.identifier,
            "name": branding.name,
            "description": branding.description,
            "logo": branding.logo,
            "metadata": branding.brand_metadata or {},
            "theme_id": branding.theme_id,
            "partner_id": branding.partner_id,
            "is_active": branding.is_active,
            "is_default": branding.is_default,
            "created_at": branding.created_at,
            "updated_at": branding.updated_at,
        }

    @staticmethod
    def serialize_theme(theme) -> Optional[Dict[str, Any]]:
        if theme is None:
            return None
        return {
            "id": theme.id,
            "identifier": theme.identifier,
            "name": theme.name,
            "description": theme.description,
            "primary_color": theme.primary_color,
            "secondary_color": theme.secondary_color,
            "accent_color": theme.accent_color,
            "heading_font_id": theme.heading_font_id,
            "body_font_id": theme.body_font_id,
            "is_enabled": theme.is_enabled,
        }

    @staticmethod
    def serialize_font(font) -> Dict[str, Any]:
        return {
            "id": font.id,
            "identifier": font.identifier,
            "name": font.name,
            "font_family": font.font_family,
            "google_font_url": font.google_font_url,
            "is_active": font.is_active,
        }

    def serialize_tenant_branding(self, resolved: TenantBranding) -> Dict[str, Any]:
        return {
            "branding": self.serialize_branding(resolved.branding),
            "theme": self.serialize_theme(resolved.theme),
            "fonts": [self.serialize_font(font) for font in resolved.fonts],
            "tenant_info": resolved.tenant_info,
        }
