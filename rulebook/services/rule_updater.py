"""Administrative updates of organization-scoped rule metadata."""

import re
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.api.exceptions import ValidationError_
from rulebook.logging_config import get_logger
from rulebook.models.rule import RuleKey, RuleMetadata, RuleStatus
from rulebook.repositories.rule import RuleRepository
from rulebook.services.remediation import RemediationSettings, validate_remediation

logger = get_logger(__name__)

TAG_PATTERN = re.compile(r"^[a-z0-9+#\-.]+$")


@dataclass(frozen=True)
class RuleUpdate:
    """Changes to apply to the metadata of one rule.

    A field left to None is not changed. An empty ``remediation`` triple
    resets the remediation to the definition defaults; an empty tag list
    clears the additional tags; an empty note removes the note.
    """

    key: RuleKey
    status: Optional[str] = None
    tags: Optional[tuple[str, ...]] = None
    remediation: Optional[RemediationSettings] = None
    note_data: Optional[str] = None
    note_user_login: Optional[str] = None


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Lowercase, deduplicate, sort and validate tags.

    Raises:
        ValidationError_: a tag contains forbidden characters
    """
    normalized = set()
    for tag in tags:
        value = (tag or "").strip().lower()
        if not value:
            continue
        if not TAG_PATTERN.match(value):
            raise ValidationError_(
                f"Tag '{tag}' is invalid. Rule tags accept only the characters: a-z, 0-9, '+', '-', '#', '.'",
                field="tags",
            )
        normalized.add(value)
    return sorted(normalized)


class RuleUpdater:
    """Applies metadata changes for one organization."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rule_repo = RuleRepository(session)

    async def update(self, update: RuleUpdate, organization_uuid: str) -> UUID:
        """Apply an update and return the rule id, to be re-indexed after commit.

        Raises:
            NotFoundError: no rule has this key
            ValidationError_: bad status, tag or remediation values
        """
        record = await self.rule_repo.find_by_key(update.key, organization_uuid)
        metadata = record.metadata or RuleMetadata(
            rule_id=record.definition.id,
            organization_uuid=organization_uuid,
            system_tags=[],
        )
        changed: list[str] = []

        if update.status is not None:
            if update.status not in RuleStatus.__members__:
                raise ValidationError_(f"Unknown status: {update.status}", field="status")
            metadata.status = update.status
            changed.append("status")

        if update.tags is not None:
            metadata.system_tags = normalize_tags(update.tags)
            changed.append("tags")

        if update.remediation is not None:
            remediation = validate_remediation(update.remediation)
            metadata.remediation_function = remediation.function
            metadata.remediation_gap_multiplier = remediation.gap_multiplier
            metadata.remediation_base_effort = remediation.base_effort
            changed.append("remediation")

        if update.note_data is not None:
            metadata.note_data = update.note_data or None
            metadata.note_user_login = update.note_user_login if update.note_data else None
            changed.append("note")

        await self.rule_repo.update_metadata(metadata)
        logger.info(
            "Rule metadata updated",
            rule_key=str(update.key),
            organization=organization_uuid,
            fields=changed,
        )
        return record.definition.id
