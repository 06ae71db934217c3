"""
Branding Schemas

Metadata sections keep the camelCase keys stored in Branding.metadata.
"""
from pydantic import BaseModel, Field
from typing import Dict, Optional


class BrandingTypography(BaseModel):
    fontFamily: Optional[str] = None
    headingFont: Optional[str] = None
    bodyFont: Optional[str] = None

    class Config:
        extra = "allow"


class BrandingLayout(BaseModel):
    borderRadius: Optional[int] = None
    spacing: Optional[int] = None
    maxWidth: Optional[int] = None

    class Config:
        extra = "allow"


class BrandingValidateRequest(BaseModel):
    colors: Optional[Dict[str, str]] = None
    typography: Optional[BrandingTypography] = None
    layout: Optional[BrandingLayout] = None

    def sections(self) -> dict:
        return {
            "colors": self.colors,
            "typography": self.typography.model_dump(exclude_none=True) if self.typography else None,
            "layout": self.layout.model_dump(exclude_none=True) if self.layout else None,
        }


class BrandingUpdate(BrandingValidateRequest):
    """Partner branding update. brand_name is checked by the service."""
    brand_name: Optional[str] = Field(None, max_length=255)
    logo_url: Optional[str] = Field(None, max_length=500)
    favicon_url: Optional[str] = Field(None, max_length=500)
    custom_css: Optional[str] = None

    def as_kwargs(self) -> dict:
        return {
            "brand_name": self.brand_name,
            "logo_url": self.logo_url,
            "favicon_url": self.favicon_url,
            "custom_css": self.custom_css,
            **self.sections(),
        }

    class Config:
        json_schema_extra = {
            "example": {
                "brand_name": "Apollo Diagnostics",
                "logo_url": "https://cdn.apollo-labs.in/logo.png",
                "colors": {
                    "primary": "#0a4d8c",
                    "secondary": "#f39200",
                    "background": "#ffffff",
                    "text": "#1a1a1a",
                },
                "layout": {"borderRadius": 6, "maxWidth": 1280},
            }
        }


class BrandingPreviewRequest(BrandingUpdate):
    pass
