"""
Diff engine for anamnesis states.

Pure functions only: no database access, no clock, no randomness. The
same pair of states always yields the same ordered diff list and the
same integrity hash.

Walk order: structured fields in schema order, then payload keys in
sorted order, recursing into nested objects. Lists are compared as
whole values.
"""
import hashlib
import json
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from .models import AuditActionChoices, ChangeTypeChoices, SeverityChoices
from .schema import (
    ALLERGY_LIST_PATH,
    HABIT_FIELD_PATHS,
    PREGNANCY_FIELD_PATHS,
    STRUCTURED_FIELDS,
    AnamnesisState,
    render_display,
    spec_for_path,
)

LOW_SEVERITY_ACTIONS = frozenset({
    AuditActionChoices.CREATE.value,
    AuditActionChoices.VIEW.value,
    AuditActionChoices.EXPORT.value,
    AuditActionChoices.PRINT.value,
})


@dataclass(frozen=True)
class FieldDiff:
    field_path: str
    field_label: str
    field_type: str
    old_value: Any
    new_value: Any
    old_value_display: Optional[str]
    new_value_display: Optional[str]
    is_critical: bool
    change_type: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def _field_diff(path: str, old: Any, new: Any) -> Optional[FieldDiff]:
    if old is None and new is None:
        return None
    if old is None:
        change_type = ChangeTypeChoices.ADDED
    elif new is None:
        change_type = ChangeTypeChoices.REMOVED
    elif _canonical_json(old) != _canonical_json(new):
        change_type = ChangeTypeChoices.MODIFIED
    else:
        return None

    spec = spec_for_path(path, new if new is not None else old)
    return FieldDiff(
        field_path=path,
        field_label=spec.label,
        field_type=spec.field_type,
        old_value=old,
        new_value=new,
        old_value_display=render_display(spec, old),
        new_value_display=render_display(spec, new),
        is_critical=spec.is_critical,
        change_type=change_type.value,
    )


def _walk_payload(old: Optional[dict], new: Optional[dict], base_path: str) -> List[FieldDiff]:
    old = old or {}
    new = new or {}
    diffs = []
    for key in sorted(set(old) | set(new), key=str):
        path = f'{base_path}.{key}'
        old_value = old.get(key)
        new_value = new.get(key)
        old_is_object = isinstance(old_value, dict) or old_value is None
        new_is_object = isinstance(new_value, dict) or new_value is None
        if old_is_object and new_is_object and (old_value or new_value):
            diffs.extend(_walk_payload(old_value, new_value, path))
            continue
        item = _field_diff(path, old_value, new_value)
        if item:
            diffs.append(item)
    return diffs


def diff(old_state: Optional[AnamnesisState], new_state: AnamnesisState) -> List[FieldDiff]:
    """
    Ordered field-level differences from ``old_state`` to ``new_state``.

    ``old_state=None`` (creation) reports every populated field as ADDED.
    """
    old = old_state.to_canonical() if old_state is not None else {}
    new = new_state.to_canonical()

    diffs = []
    for spec in STRUCTURED_FIELDS:
        item = _field_diff(spec.path, old.get(spec.path), new.get(spec.path))
        if item:
            diffs.append(item)
    diffs.extend(_walk_payload(old.get('payload'), new.get('payload'), 'payload'))
    return diffs


def summarize(diffs: Iterable[FieldDiff]) -> Dict[str, Any]:
    """Counts by change type, critical count and the changed paths."""
    diffs = list(diffs)
    return {
        'total_changes': len(diffs),
        'critical_changes': sum(1 for d in diffs if d.is_critical),
        'added': sum(1 for d in diffs if d.change_type == ChangeTypeChoices.ADDED),
        'removed': sum(1 for d in diffs if d.change_type == ChangeTypeChoices.REMOVED),
        'modified': sum(1 for d in diffs if d.change_type == ChangeTypeChoices.MODIFIED),
        'fields_changed': [d.field_path for d in diffs],
    }


def compute_integrity_hash(state: AnamnesisState) -> str:
    """SHA-256 over the sorted canonical field list of ``state``."""
    canonical = sorted(state.to_canonical().items())
    return hashlib.sha256(_canonical_json(canonical).encode('utf-8')).hexdigest()


def _adds_severe_allergy(field_diff: FieldDiff) -> bool:
    if field_diff.field_path != ALLERGY_LIST_PATH or not isinstance(field_diff.new_value, list):
        return False
    previous = field_diff.old_value if isinstance(field_diff.old_value, list) else []
    previous_keys = {_canonical_json(item) for item in previous}
    return any(
        isinstance(item, dict)
        and str(item.get('severity', '')).upper() == 'SEVERE'
        and _canonical_json(item) not in previous_keys
        for item in field_diff.new_value
    )


def field_severity(field_diff: FieldDiff) -> str:
    """Severity contributed by a single field change."""
    if field_diff.field_path in PREGNANCY_FIELD_PATHS and field_diff.new_value is True:
        return SeverityChoices.CRITICAL.value
    if _adds_severe_allergy(field_diff):
        return SeverityChoices.CRITICAL.value
    if field_diff.is_critical:
        return SeverityChoices.HIGH.value
    if field_diff.field_path in HABIT_FIELD_PATHS:
        return SeverityChoices.MEDIUM.value
    return SeverityChoices.LOW.value


_SEVERITY_RANK = {
    SeverityChoices.LOW.value: 0,
    SeverityChoices.MEDIUM.value: 1,
    SeverityChoices.HIGH.value: 2,
    SeverityChoices.CRITICAL.value: 3,
}


def classify_severity(diffs: Iterable[FieldDiff], action: str) -> str:
    """
    CREATE and access events are LOW. Otherwise the highest field
    severity: pregnancy set to true or a new SEVERE allergy is CRITICAL,
    any other critical field HIGH, habit/hygiene fields MEDIUM.
    """
    if str(action) in LOW_SEVERITY_ACTIONS:
        return SeverityChoices.LOW.value
    severity = SeverityChoices.LOW.value
    for item in diffs:
        candidate = field_severity(item)
        if _SEVERITY_RANK[candidate] > _SEVERITY_RANK[severity]:
            severity = candidate
    return severity
