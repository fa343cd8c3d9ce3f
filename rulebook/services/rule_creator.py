"""Creation of custom rules derived from template rules."""

import re
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.api.exceptions import (
    ConflictError,
    DuplicateKeyError,
    InvalidTemplateError,
    NotFoundError,
    UnknownParamError,
    ValidationError_,
)
from rulebook.logging_config import get_logger
from rulebook.models.rule import (
    DescriptionFormat,
    RuleDefinition,
    RuleKey,
    RuleMetadata,
    RuleParam,
    RuleStatus,
    Severity,
)
from rulebook.repositories.rule import RuleRepository

logger = get_logger(__name__)

CUSTOM_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


@dataclass(frozen=True)
class NewCustomRule:
    """Immutable request to derive a custom rule from a template."""

    template_key: RuleKey
    custom_key: str
    name: Optional[str] = None
    severity: Optional[str] = None
    status: str = RuleStatus.READY.value
    markdown_description: Optional[str] = None
    params: Mapping[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def for_template(cls, custom_key: str, template_key: RuleKey) -> "NewCustomRule":
        return cls(template_key=template_key, custom_key=custom_key)

    def with_name(self, name: str) -> "NewCustomRule":
        return replace(self, name=name)

    def with_severity(self, severity: str) -> "NewCustomRule":
        return replace(self, severity=severity)

    def with_status(self, status: str) -> "NewCustomRule":
        return replace(self, status=status)

    def with_markdown_description(self, markdown_description: str) -> "NewCustomRule":
        return replace(self, markdown_description=markdown_description)

    def with_params(self, params: Mapping[str, Optional[str]]) -> "NewCustomRule":
        return replace(self, params=dict(params))

    def param(self, name: str) -> Optional[str]:
        value = self.params.get(name)
        return value if value else None

    def validate(self) -> None:
        """Validate the request as a whole, reporting every problem at once.

        Raises:
            ValidationError_: one or more fields are missing or malformed
        """
        errors: list[str] = []
        if not self.custom_key or not CUSTOM_KEY_PATTERN.match(self.custom_key):
            errors.append(
                f"The rule key \"{self.custom_key}\" is invalid, it should only contain: a-z, 0-9, \"_\""
            )
        if not self.name or not self.name.strip():
            errors.append("The name is missing")
        if not self.markdown_description or not self.markdown_description.strip():
            errors.append("The description is missing")
        if not self.severity:
            errors.append("The severity is missing")
        elif self.severity not in Severity.__members__:
            errors.append(f"Severity \"{self.severity}\" is invalid")
        if not self.status:
            errors.append("The status is missing")
        elif self.status not in RuleStatus.__members__:
            errors.append(f"Status \"{self.status}\" is invalid")

        if errors:
            raise ValidationError_(
                "Invalid custom rule: " + "; ".join(errors),
                field="custom_rule",
                details={"errors": errors},
            )


class RuleCreator:
    """Derives custom rule definitions, metadata and params from templates.

    Everything is written through the caller's session; nothing is committed
    here, so the definition, its metadata and its params land together or
    not at all.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rule_repo = RuleRepository(session)

    async def create(self, request: NewCustomRule, organization_uuid: str) -> RuleKey:
        """Create a custom rule and return its key.

        Raises:
            ValidationError_: the request is incomplete or malformed
            NotFoundError: the template rule does not exist
            InvalidTemplateError: the referenced rule is not a template
            UnknownParamError: a value is given for a parameter the template lacks
            DuplicateKeyError: the custom key already exists in the repository
        """
        request.validate()

        template = await self.rule_repo.get_by_key(request.template_key)
        if template is None:
            raise NotFoundError("Template rule", str(request.template_key))
        if not template.is_template:
            raise InvalidTemplateError(str(request.template_key))

        custom_key = RuleKey(template.repository_key, request.custom_key)
        if await self.rule_repo.get_by_key(custom_key) is not None:
            raise DuplicateKeyError(str(custom_key))

        template_params = await self.rule_repo.get_params(template.id)
        declared = {p.name for p in template_params}
        unknown = [name for name in request.params if name not in declared]
        if unknown:
            raise UnknownParamError(str(request.template_key), unknown)

        definition = RuleDefinition(
            repository_key=custom_key.repository,
            rule_key=custom_key.rule,
            name=request.name.strip(),
            description=request.markdown_description,
            description_format=DescriptionFormat.MARKDOWN.value,
            severity=request.severity,
            rule_type=template.rule_type,
            config_key=template.config_key,
            language=template.language,
            default_tags=list(template.default_tags or []),
            is_template=False,
            template_id=template.id,
            default_remediation_function=template.default_remediation_function,
            default_remediation_gap_multiplier=template.default_remediation_gap_multiplier,
            default_remediation_base_effort=template.default_remediation_base_effort,
        )
        try:
            rule_id = await self.rule_repo.insert_definition(definition)
        except ConflictError as e:
            raise DuplicateKeyError(str(custom_key)) from e

        await self.rule_repo.update_metadata(
            RuleMetadata(
                rule_id=rule_id,
                organization_uuid=organization_uuid,
                status=request.status,
                system_tags=[],
            )
        )

        for template_param in template_params:
            await self.rule_repo.insert_param(
                rule_id,
                RuleParam(
                    name=template_param.name,
                    param_type=template_param.param_type,
                    description=template_param.description,
                    default_value=request.param(template_param.name),
                ),
            )

        logger.info(
            "Custom rule created",
            rule_key=str(custom_key),
            template_key=str(request.template_key),
            organization=organization_uuid,
        )
        return custom_key
