"""Registry of the CRM to portal sync pipelines."""

import difflib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from portal_sync.exceptions import UnknownPipelineError


@dataclass(frozen=True)
class PipelineConfig:
    """Static description of one entity-type sync.

    ``output_fields`` projects the transformed record; absent fields are sent
    as null. ``fallback_fields`` maps an output field to the raw source field
    used when transforming a record raises.
    """
    task_name: str
    module_name: str
    source_module: str
    mapping_type: str
    endpoint: str
    output_fields: Tuple[str, ...]
    fallback_fields: Dict[str, str] = field(default_factory=dict)
    static_filters: Tuple[Dict[str, Any], ...] = ()
    page_size: int = 50
    order_by: str = "date_modified"
    order_direction: str = "desc"
    modified_field: str = "date_modified"
    require_checkpoint: bool = False
    skip_invalid: bool = False
    direction: str = "inbound"


PIPELINES: Dict[str, PipelineConfig] = {
    "SugarCRMAccountToPortalMember": PipelineConfig(
        task_name="SugarCRMAccountToPortalMember",
        module_name="Members",
        source_module="Accounts",
        mapping_type="sugarcrm_to_portal_members",
        endpoint="api/integration/SugarMemberToPortalMember",
        output_fields=("tm_id_c", "member_name", "status_c", "membership_category_c", "sugarcrm_id"),
        fallback_fields={"member_name": "name", "sugarcrm_id": "id"},
        static_filters=(
            {"tm_id_c": {"$not_null": ""}},
            {"tm_id_c": {"$not_equals": "0"}},
            {"acc_type_c": {"$equals": "Member"}},
        ),
    ),
    "SugarCRMCoToPortalUsers": PipelineConfig(
        task_name="SugarCRMCoToPortalUsers",
        module_name="ComplianceOfficers",
        source_module="comp_Compliance_Officers",
        mapping_type="sugarcrm_to_portal_users",
        endpoint="api/integration/SugarComplianceOfficersToPortalUsers",
        output_fields=("co_sugar_id", "co_name", "member_crm_id", "mobileno", "email"),
        fallback_fields={"co_sugar_id": "id", "co_name": "name"},
        static_filters=({"status_c": {"$equals": "1"}},),
    ),
    "SugarAuditorToPortalAuditor": PipelineConfig(
        task_name="SugarAuditorToPortalAuditor",
        module_name="Auditors",
        source_module="aud_Auditor",
        mapping_type="sugarcrm_to_portal_auditors",
        endpoint="api/integration/SugarAuditorToPortalAuditor",
        output_fields=("sugarcrm_id", "name", "auditor_user_id_c", "email_id_c", "registration_no_c"),
        fallback_fields={
            "sugarcrm_id": "id",
            "name": "name",
            "auditor_user_id_c": "auditor_user_id_c",
            "email_id_c": "email_id_c",
            "registration_no_c": "registration_no_c",
        },
        page_size=20,
        order_direction="asc",
        require_checkpoint=True,
    ),
    "SugarImportCasesToPortalCases": PipelineConfig(
        task_name="SugarImportCasesToPortalCases",
        module_name="Cases",
        source_module="Cases",
        mapping_type="sugarcrm_to_portal_cases",
        endpoint="api/integration/SugarCasesToPortalCases",
        output_fields=(
            "case_id", "name", "case_number", "member_id", "type", "sub_type", "audit_details",
            "audit_due_date", "from_period", "to_period", "audit_user_id", "margin", "stage",
            "comment", "rejection_type",
        ),
        fallback_fields={"case_id": "id", "name": "name"},
    ),
}


def list_pipelines() -> List[PipelineConfig]:
    return list(PIPELINES.values())


def get_pipeline(task_name: str, registry: Optional[Dict[str, PipelineConfig]] = None) -> PipelineConfig:
    """Look up a pipeline by task name.

    Raises:
        UnknownPipelineError: With close-match suggestions if the name is unknown.
    """
    registry = PIPELINES if registry is None else registry
    if task_name in registry:
        return registry[task_name]

    suggestions = difflib.get_close_matches(task_name, registry.keys(), n=3)
    message = f"Unknown task '{task_name}'"
    if suggestions:
        message += f". Did you mean: {', '.join(suggestions)}?"
    else:
        message += f". Available tasks: {', '.join(sorted(registry))}"
    raise UnknownPipelineError(message)
