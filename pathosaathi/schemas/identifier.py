"""
Identifier Configuration Schemas
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from pathosaathi.services.identifier_formats import DateFormat, ResetFrequency


class ModelConfigUpdate(BaseModel):
    """Partial identifier config for one model. Unset fields keep their value."""
    prefix: Optional[str] = Field(None, max_length=10)
    format: Optional[str] = Field(None, max_length=50)
    separator: Optional[str] = Field(None, max_length=1)
    date_format: Optional[DateFormat] = None
    counter_length: Optional[int] = None
    reset_frequency: Optional[ResetFrequency] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, mode="json")


class TemplateApply(BaseModel):
    template_name: str = Field(..., min_length=1)


class IdentifierConfigurationResponse(BaseModel):
    id: str
    identifier: Optional[str]
    tenant_prefix: str
    partner_id: Optional[str]
    partner_name: str
    global_prefix: str
    configurations: Dict[str, Any]
    applied_template: Optional[str]
    version: str
    is_active: bool
    last_modified_by: Optional[str]
    change_history: List[Dict[str, Any]]
    total_identifiers_generated: int
    last_used: Optional[datetime]
    configuration_changes: int
    models_configured: int

    class Config:
        from_attributes = True
