"""
Branding, Theme and Font Models

All three are GLOBAL. A Branding row holds the tenant-facing look in its
`metadata` JSON column:

    {
        "brandName": "...", "logoUrl": "...", "faviconUrl": "...",
        "colors": {"primary": "#1976d2", ...},
        "typography": {"fontFamily": "...", "headingFont": "...", "bodyFont": "...", "fontSize": {...}},
        "layout": {"borderRadius": 4, "spacing": 8, "maxWidth": 1200, "sidebarWidth": 280, ...},
        "customCSS": "..."
    }

Keys inside metadata keep the camelCase names the frontend consumes.
"""
from sqlalchemy import Column, String, Boolean, Text, JSON
from sqlalchemy.orm import declared_attr, validates

from pathosaathi.core.exceptions import ValidationError
from pathosaathi.models.base import TenantEntity, reference_column

GOOGLE_FONT_HOSTS = ("https://fonts.googleapis.com", "https://fonts.gstatic.com")


class FontFields(TenantEntity):
    name = Column(String(100), nullable=False)
    font_family = Column(String(255), nullable=False)
    google_font_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    @validates("google_font_url")
    def validate_google_font_url(self, key, value):
        if value and not value.startswith(GOOGLE_FONT_HOSTS):
            raise ValidationError("Font URL must be a valid Google Fonts URL")
        return value


class ThemeFields(TenantEntity):
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    primary_color = Column(String(7), nullable=False)
    secondary_color = Column(String(7), nullable=False)
    accent_color = Column(String(7), nullable=True)
    is_enabled = Column(Boolean, default=True, nullable=False)

    @declared_attr
    def heading_font_id(cls):
        return reference_column(cls, "Font", ondelete="SET NULL")

    @declared_attr
    def body_font_id(cls):
        return reference_column(cls, "Font", ondelete="SET NULL")


class BrandingFields(TenantEntity):
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    logo = Column(String(500), nullable=True)
    # "metadata" is reserved on declarative classes, hence the attribute name
    brand_metadata = Column("metadata", JSON, default=dict, nullable=False)
    # Owning partner. Not a foreign key: Partner already references Branding.
    partner_id = Column(String(36), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False, index=True)

    @declared_attr
    def theme_id(cls):
        return reference_column(cls, "Theme", ondelete="SET NULL")
