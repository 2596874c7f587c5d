"""AI-assisted field mapping suggestions via OpenRouter.

The per-tenant AI slot is reserved before the model is called, so a burst
of concurrent requests cannot all slip past the hourly cap.
"""

import json
import logging
import re
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from erpsync.core.auth import AuthContext
from erpsync.core.config import settings
from erpsync.core.errors import NotFound, RateLimited, UpstreamRejected
from erpsync.core.rate_limiter import enforce_ai_rate
from erpsync.models.audit_log import AuditActionType
from erpsync.models.field_mapping import TransformFunction
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.schemas.field_mapping import FieldMappingSuggestion, SuggestMappingsRequest
from erpsync.services.audit_service import AuditService
from erpsync.services.connection_service import load_integration
from erpsync.services.openrouter import OpenRouterClient, OpenRouterError

logger = logging.getLogger(__name__)

JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
TRANSFORM_VALUES = {t.value for t in TransformFunction}

SYSTEM_PROMPT = (
    "You are an ERP field mapping expert. Suggest the best field mappings between "
    "a distribution platform and the {erp_system} ERP system for {entity_type}. "
    "Consider field names, data types, and common business logic."
)

USER_PROMPT = """Map these local fields to {erp_system} ERP fields.

Local fields: {local_fields}

{erp_system} ERP fields: {erp_fields}

For each local field, suggest the best matching ERP field, a confidence score
(0.0 to 1.0), an optional transform ({transforms} or null) and whether the
field is required.

Return ONLY a JSON array with this structure:
[
  {{
    "local_field": "field_name",
    "erp_field": "suggested_erp_field",
    "confidence": 0.95,
    "transform_function": null,
    "is_required": true,
    "reasoning": "brief explanation"
  }}
]"""


def build_messages(
    erp_system: str,
    entity_type: str,
    local_fields: list[str],
    erp_fields: list[str],
) -> list[dict[str, str]]:
    return [
        {
            "role": "system",
            "content": SYSTEM_PROMPT.format(erp_system=erp_system, entity_type=entity_type),
        },
        {
            "role": "user",
            "content": USER_PROMPT.format(
                erp_system=erp_system,
                local_fields=json.dumps(local_fields),
                erp_fields=json.dumps(erp_fields),
                transforms="|".join(sorted(TRANSFORM_VALUES)),
            ),
        },
    ]


def parse_suggestions(content: str, local_fields: list[str]) -> list[FieldMappingSuggestion]:
    """Extract the JSON array from the model's answer.

    Entries for fields that were not asked about, or that do not validate,
    are dropped.
    """
    match = JSON_ARRAY_RE.search(content or "")
    if match is None:
        raise UpstreamRejected("AI mapping failed: response contained no suggestions")
    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError:
        raise UpstreamRejected("AI mapping failed: response was not valid JSON") from None

    wanted = set(local_fields)
    suggestions: list[FieldMappingSuggestion] = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        data: dict[str, Any] = dict(item)
        if data.get("transform_function") not in TRANSFORM_VALUES:
            data["transform_function"] = None
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        data["confidence"] = min(max(confidence, 0.0), 1.0)
        try:
            suggestion = FieldMappingSuggestion.model_validate(data)
        except PydanticValidationError:
            continue
        if suggestion.local_field in wanted and suggestion.erp_field:
            suggestions.append(suggestion)
    return suggestions


class FieldMappingAIService:
    def __init__(self, db: Session, client: OpenRouterClient | None = None):
        self.db = db
        self.client = client
        self.audit = AuditService(db)

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        client = self.client or OpenRouterClient()
        try:
            response = await client.chat(
                model=settings.OPENROUTER_MODEL,
                messages=messages,
                temperature=0.3,
            )
        except OpenRouterError as e:
            logger.warning("AI mapping request failed: %s", e)
            if e.status_code == 429:
                raise RateLimited("AI mapping rate limit exceeded", retry_after=60) from e
            raise UpstreamRejected("AI mapping failed", status=e.status_code) from e
        finally:
            if self.client is None:
                await client.close()
        try:
            return str(response["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError):
            raise UpstreamRejected("AI mapping failed: unexpected response") from None

    async def suggest(
        self,
        auth: AuthContext,
        integration_id: UUID,
        entity_type: str,
        request: SuggestMappingsRequest,
    ) -> list[FieldMappingSuggestion]:
        """Ask the model for mappings and store them as unverified AI suggestions."""
        integration = load_integration(self.db, auth, integration_id)
        entity = ErpEntityRepository(self.db).get(UUID(str(integration.id)), entity_type)
        if entity is None:
            raise NotFound("Entity not found")

        enforce_ai_rate(self.db, UUID(str(integration.tenant_id)))

        content = await self._complete(
            build_messages(
                str(integration.erp_system), entity_type, request.local_fields, request.erp_fields
            )
        )
        suggestions = parse_suggestions(content, request.local_fields)

        repo = FieldMappingRepository(self.db)
        for suggestion in suggestions:
            repo.upsert(
                UUID(str(entity.id)),
                suggestion.local_field,
                commit=False,
                erp_field=suggestion.erp_field,
                is_required=suggestion.is_required,
                transform_function=(
                    suggestion.transform_function.value if suggestion.transform_function else None
                ),
                ai_suggested=True,
                ai_confidence_score=suggestion.confidence,
                manually_verified=False,
            )
        self.db.commit()

        self.audit.record(
            integration.tenant_id,  # type: ignore[arg-type]
            auth.performed_by,
            AuditActionType.ERP_AI_FIELD_MAPPING,
            {
                "integration_id": integration.id,
                "entity_type": entity_type,
                "suggestion_count": len(suggestions),
            },
        )
        return suggestions
