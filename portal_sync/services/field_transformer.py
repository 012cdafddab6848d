"""Field transformer for turning SugarCRM records into portal records."""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from portal_sync.exceptions import ConfigurationError, MappingNotFoundError
from portal_sync.models.field_mapping import FieldMapping, ValidationRules
from portal_sync.timeutils import isoformat_z

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-()]")


@dataclass
class TransformationResult:
    """Outcome of transforming one source record."""

    data: Dict[str, Any]
    is_valid: bool
    validation_errors: List[str] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class FieldMappingLoader:
    """Loads mapping types from the field mappings JSON document.

    The document is read once and each mapping type is parsed once, then
    served from cache for the rest of the process.
    """

    def __init__(self, path: Optional[str] = None, mappings: Optional[Dict[str, Any]] = None):
        """Initialize loader.

        Args:
            path: Path to the JSON document (defaults to settings.field_mappings_path).
            mappings: Already-parsed document, used instead of reading ``path``.
        """
        if path is None and mappings is None:
            from portal_sync.config import settings

            path = settings.field_mappings_path
        self.path = path
        self._raw: Optional[Dict[str, Any]] = mappings
        self._cache: Dict[str, FieldMapping] = {}

    def _load_document(self) -> Dict[str, Any]:
        if self._raw is None:
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    self._raw = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Failed to load field mappings from {self.path}: {e}") from e
        return self._raw

    def get(self, mapping_type: str) -> FieldMapping:
        """Get a mapping type.

        Raises:
            MappingNotFoundError: If the document has no such mapping type.
            ConfigurationError: If the document or the mapping is malformed.
        """
        if mapping_type in self._cache:
            return self._cache[mapping_type]

        document = self._load_document()
        if mapping_type not in document:
            raise MappingNotFoundError(f"Field mapping configuration not found for type: {mapping_type}")

        try:
            mapping = FieldMapping.model_validate(document[mapping_type])
        except ValidationError as e:
            raise ConfigurationError(f"Invalid field mapping '{mapping_type}': {e}") from e

        self._cache[mapping_type] = mapping
        logger.debug(f"Loaded field mapping '{mapping_type}' ({len(mapping.field_mappings)} fields)")
        return mapping

    def mapping_types(self) -> List[str]:
        return list(self._load_document().keys())


class FieldTransformer:
    """Applies field mappings to source records."""

    def __init__(self, loader: Optional[FieldMappingLoader] = None):
        self.loader = loader or FieldMappingLoader()

    def get_mapping(self, mapping_type: str) -> FieldMapping:
        return self.loader.get(mapping_type)

    def source_fields(self, mapping_type: str) -> List[str]:
        """SugarCRM fields to request for a mapping type."""
        return self.loader.get(mapping_type).source_fields()

    def required_source_fields(self, mapping_type: str) -> List[str]:
        return self.loader.get(mapping_type).required_source_fields()

    def transform(self, source_record: Dict[str, Any], mapping_type: str) -> TransformationResult:
        """Transform one SugarCRM record into portal shape.

        Validation problems never raise; they are collected on the result.

        Args:
            source_record: Raw SugarCRM record.
            mapping_type: Mapping type to apply.

        Returns:
            TransformationResult with data, is_valid and validation_errors.

        Raises:
            MappingNotFoundError: If the mapping type is unknown.
        """
        mapping = self.loader.get(mapping_type)
        data: Dict[str, Any] = {}
        errors: List[str] = []

        for source_field, rule in mapping.field_mappings.items():
            value = source_record.get(source_field)

            if rule.required and _is_empty(value):
                errors.append(f"Missing required field: {source_field}")
                continue

            transformed = self._apply_transform(value, rule.transform)
            if not _is_empty(transformed):
                data[rule.portal_field] = transformed

        for portal_field, default in mapping.default_values.items():
            if _is_empty(data.get(portal_field)):
                data[portal_field] = default

        for name, computed in mapping.computed_fields.items():
            value = self._compute(computed.transform, computed.source_field, data)
            if value is None:
                logger.debug(f"Computed field '{name}' produced no value (kind '{computed.transform}')")
                continue
            data[computed.portal_field] = value

        if mapping.validation_rules is not None:
            errors.extend(self._validate(data, mapping.validation_rules))

        return TransformationResult(data=data, is_valid=not errors, validation_errors=errors)

    @staticmethod
    def _apply_transform(value: Any, kind: str) -> Any:
        if _is_empty(value):
            return value
        if kind == "uppercase":
            return str(value).upper()
        if kind == "lowercase":
            return str(value).lower()
        if kind == "trim":
            return str(value).strip()
        # "direct" and anything unrecognized
        return value

    @staticmethod
    def _compute(kind: str, source_field: Optional[str], data: Dict[str, Any]) -> Any:
        now = datetime.now(timezone.utc)
        if kind == "timestamp":
            return isoformat_z(now)
        if kind == "current_date":
            return now.date().isoformat()
        if kind == "copy_from_name":
            return data.get("name")
        if kind == "copy_field" and source_field:
            return data.get(source_field)
        return None

    @staticmethod
    def _validate(data: Dict[str, Any], rules: ValidationRules) -> List[str]:
        errors = []

        for required in rules.required_fields:
            if _is_empty(data.get(required)):
                errors.append(f"Missing required field: {required}")

        email = data.get("email")
        if rules.email_validation and not _is_empty(email):
            email_text = email if isinstance(email, str) else json.dumps(email)
            if not EMAIL_PATTERN.fullmatch(email_text):
                errors.append(f"Invalid email format: {email_text}")

        phone = data.get("phone")
        if rules.phone_validation and not _is_empty(phone):
            if not PHONE_PATTERN.fullmatch(PHONE_STRIP_PATTERN.sub("", str(phone))):
                errors.append(f"Invalid phone format: {phone}")

        return errors
