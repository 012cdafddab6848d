"""Field mapping configuration models.

A mapping type (e.g. ``sugarcrm_to_portal_members``) describes how a SugarCRM
record becomes a portal record. Instances are frozen once loaded.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    portal_field: str
    required: bool = False
    transform: str = "direct"  # direct, uppercase, lowercase, trim


class ComputedField(BaseModel):
    model_config = ConfigDict(frozen=True)

    portal_field: str
    transform: str  # timestamp, current_date, copy_from_name, copy_field
    source_field: Optional[str] = None


class ValidationRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    required_fields: List[str] = Field(default_factory=list)
    email_validation: bool = True
    phone_validation: bool = True


class FieldMapping(BaseModel):
    """One mapping type from the field mappings document."""

    model_config = ConfigDict(frozen=True)

    field_mappings: Dict[str, FieldRule]
    default_values: Dict[str, Any] = Field(default_factory=dict)
    computed_fields: Dict[str, ComputedField] = Field(default_factory=dict)
    validation_rules: Optional[ValidationRules] = None

    def source_fields(self) -> List[str]:
        """SugarCRM fields that must be fetched for this mapping."""
        return list(self.field_mappings.keys())

    def required_source_fields(self) -> List[str]:
        return [name for name, rule in self.field_mappings.items() if rule.required]
