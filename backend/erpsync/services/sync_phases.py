"""Record-level import/export phases of a sync job.

Import pulls records from the ERP, maps them to local fields and upserts them
into a :class:`RecordStore`.  Conflicts are resolved last-write-wins on
``updated_at``: an incoming record older than the stored one is skipped.
Export maps locally changed records to ERP fields and pushes them through
the adapter.  Phases are not resumable; a retried job re-runs them whole.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, Protocol

from erpsync.models.field_mapping import FieldMapping, TransformFunction
from erpsync.services.erp_adapters.base import ConnectionContext, ErpAdapter

logger = logging.getLogger(__name__)

RECORD_ID_FIELD = "id"
UPDATED_AT_FIELD = "updated_at"


class MappingError(ValueError):
    """A record could not be mapped (missing required field, bad value)."""


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date().isoformat()


TRANSFORMS: dict[str, Callable[[Any], Any]] = {
    TransformFunction.UPPERCASE.value: lambda v: str(v).upper(),
    TransformFunction.LOWERCASE.value: lambda v: str(v).lower(),
    TransformFunction.STRIP.value: lambda v: str(v).strip(),
    TransformFunction.FORMAT_DATE.value: _format_date,
    TransformFunction.TO_FLOAT.value: float,
}


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class MappingRule:
    local_field: str
    erp_field: str
    is_required: bool = False
    transform_function: str | None = None
    default_value: str | None = None

    @classmethod
    def from_model(cls, mapping: FieldMapping) -> "MappingRule":
        return cls(
            local_field=str(mapping.local_field),
            erp_field=str(mapping.erp_field),
            is_required=bool(mapping.is_required),
            transform_function=mapping.transform_function,  # type: ignore[arg-type]
            default_value=mapping.default_value,  # type: ignore[arg-type]
        )


class FieldMapper:
    """Applies an entity's field mappings in either direction."""

    def __init__(self, rules: list[MappingRule]):
        self.rules = rules

    @classmethod
    def from_models(cls, mappings: list[FieldMapping]) -> "FieldMapper":
        return cls([MappingRule.from_model(m) for m in mappings])

    def _apply(self, rule: MappingRule, value: Any) -> Any:
        if value is None or value == "":
            if rule.default_value is not None:
                value = rule.default_value
            elif rule.is_required:
                raise MappingError(f"Missing required field {rule.local_field}")
            else:
                return None
        transform = TRANSFORMS.get(rule.transform_function or "")
        if transform is None:
            return value
        try:
            return transform(value)
        except (TypeError, ValueError) as e:
            raise MappingError(f"Cannot apply {rule.transform_function} to {rule.local_field}") from e

    def to_local(self, erp_record: dict[str, Any]) -> dict[str, Any]:
        local = {
            rule.local_field: self._apply(rule, erp_record.get(rule.erp_field))
            for rule in self.rules
        }
        local.setdefault(UPDATED_AT_FIELD, erp_record.get(UPDATED_AT_FIELD))
        return local

    def to_erp(self, local_record: dict[str, Any]) -> dict[str, Any]:
        return {
            rule.erp_field: self._apply(rule, local_record.get(rule.local_field))
            for rule in self.rules
        }


class RecordStore(Protocol):
    """Local side of a sync: where imported records land and exports come from."""

    def get(self, entity_type: str, external_id: str) -> dict[str, Any] | None: ...

    def upsert(self, entity_type: str, external_id: str, record: dict[str, Any]) -> None: ...

    def changed_since(self, entity_type: str, since: datetime | None) -> list[dict[str, Any]]: ...


class NullRecordStore:
    """Default store: accepts imports and has nothing to export."""

    def get(self, entity_type: str, external_id: str) -> dict[str, Any] | None:
        return None

    def upsert(self, entity_type: str, external_id: str, record: dict[str, Any]) -> None:
        logger.debug("Discarding imported %s record %s", entity_type, external_id)

    def changed_since(self, entity_type: str, since: datetime | None) -> list[dict[str, Any]]:
        return []


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.records: dict[str, dict[str, dict[str, Any]]] = {}

    def get(self, entity_type: str, external_id: str) -> dict[str, Any] | None:
        return self.records.get(entity_type, {}).get(external_id)

    def upsert(self, entity_type: str, external_id: str, record: dict[str, Any]) -> None:
        self.records.setdefault(entity_type, {})[external_id] = dict(record)

    def changed_since(self, entity_type: str, since: datetime | None) -> list[dict[str, Any]]:
        records = list(self.records.get(entity_type, {}).values())
        if since is None:
            return records
        result = []
        for record in records:
            updated_at = parse_timestamp(record.get(UPDATED_AT_FIELD))
            if updated_at is None or updated_at > since:
                result.append(record)
        return result


@dataclass
class PhaseResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def __add__(self, other: "PhaseResult") -> "PhaseResult":
        return PhaseResult(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
        )


def incoming_wins(existing: dict[str, Any] | None, incoming: dict[str, Any]) -> bool:
    """Last-write-wins on ``updated_at``; missing timestamps let the incoming record win."""
    if existing is None:
        return True
    existing_ts = parse_timestamp(existing.get(UPDATED_AT_FIELD))
    incoming_ts = parse_timestamp(incoming.get(UPDATED_AT_FIELD))
    if existing_ts is None or incoming_ts is None:
        return True
    return incoming_ts >= existing_ts


async def run_import(
    adapter: ErpAdapter,
    ctx: ConnectionContext,
    entity_type: str,
    erp_entity_name: str,
    mapper: FieldMapper,
    store: RecordStore,
    since: datetime | None = None,
) -> PhaseResult:
    result = PhaseResult()
    for erp_record in await adapter.fetch_records(ctx, erp_entity_name, since):
        result.processed += 1
        external_id = erp_record.get(RECORD_ID_FIELD)
        if external_id is None:
            result.failed += 1
            continue
        try:
            local = mapper.to_local(erp_record)
        except MappingError as e:
            logger.info("Skipping %s record %s: %s", entity_type, external_id, e)
            result.failed += 1
            continue
        local[RECORD_ID_FIELD] = str(external_id)
        if incoming_wins(store.get(entity_type, str(external_id)), local):
            store.upsert(entity_type, str(external_id), local)
        result.succeeded += 1
    return result


async def run_export(
    adapter: ErpAdapter,
    ctx: ConnectionContext,
    entity_type: str,
    erp_entity_name: str,
    mapper: FieldMapper,
    store: RecordStore,
    since: datetime | None = None,
) -> PhaseResult:
    result = PhaseResult()
    outgoing: list[dict[str, Any]] = []
    for local in store.changed_since(entity_type, since):
        result.processed += 1
        try:
            outgoing.append(mapper.to_erp(local))
        except MappingError as e:
            logger.info("Not exporting %s record %s: %s", entity_type, local.get(RECORD_ID_FIELD), e)
            result.failed += 1
    if outgoing:
        accepted = await adapter.push_records(ctx, erp_entity_name, outgoing)
        ok = sum(1 for flag in accepted if flag)
        result.succeeded += ok
        result.failed += len(outgoing) - ok
    return result
