"""
Anamnesis field schema and state value object.

The schema is the fixed, versioned list of fields the diff engine walks.
Criticality is a property of the field, never of the value it takes.
Bump FIELD_SCHEMA_VERSION whenever a field is added, removed or
re-tagged; every stored version records the schema it was written with.
"""
import dataclasses
import datetime
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .models import AnamnesisTypeChoices, PerceivedUrgencyChoices

FIELD_SCHEMA_VERSION = 1


class FieldType:
    BOOLEAN = 'boolean'
    ENUM = 'enum'
    TEXT = 'text'
    SCALE = 'scale'
    INTEGER = 'integer'
    DATE = 'date'
    LIST = 'list'
    JSON = 'json'


@dataclass(frozen=True)
class FieldSpec:
    path: str
    label: str
    field_type: str
    is_critical: bool = False
    choices: Optional[Dict[str, str]] = None
    scale_max: Optional[int] = None


STRUCTURED_FIELDS = (
    FieldSpec('anamnesis_type', 'Anamnesis type', FieldType.ENUM,
              choices=dict(AnamnesisTypeChoices.choices)),
    FieldSpec('chief_complaint', 'Chief complaint', FieldType.TEXT, is_critical=True),
    FieldSpec('has_pain', 'Has current pain', FieldType.BOOLEAN),
    FieldSpec('pain_intensity', 'Pain intensity', FieldType.SCALE, is_critical=True, scale_max=10),
    FieldSpec('perceived_urgency', 'Perceived urgency', FieldType.ENUM, is_critical=True,
              choices=dict(PerceivedUrgencyChoices.choices)),
    FieldSpec('has_chronic_diseases', 'Has chronic diseases', FieldType.BOOLEAN, is_critical=True),
    FieldSpec('has_allergies', 'Has allergies', FieldType.BOOLEAN, is_critical=True),
    FieldSpec('has_current_medication', 'Takes current medication', FieldType.BOOLEAN, is_critical=True),
    FieldSpec('is_pregnant', 'Pregnant', FieldType.BOOLEAN, is_critical=True),
    FieldSpec('exposed_to_tobacco_smoke', 'Exposed to tobacco smoke', FieldType.BOOLEAN),
    FieldSpec('bruxism', 'Bruxism', FieldType.BOOLEAN),
    FieldSpec('brushings_per_day', 'Brushings per day', FieldType.INTEGER),
    FieldSpec('uses_dental_floss', 'Uses dental floss', FieldType.BOOLEAN),
    FieldSpec('last_dental_visit', 'Last dental visit', FieldType.DATE),
    FieldSpec('has_sucking_habits', 'Has sucking habits', FieldType.BOOLEAN),
    FieldSpec('breastfeeding_recorded', 'Breastfeeding recorded', FieldType.BOOLEAN),
)

STRUCTURED_FIELD_NAMES = tuple(spec.path for spec in STRUCTURED_FIELDS)

# Known payload leaves. Unknown payload keys are still diffed, with an
# inferred type and no critical tag.
PAYLOAD_FIELDS = {
    spec.path: spec for spec in (
        FieldSpec('payload.allergies', 'Allergies', FieldType.LIST, is_critical=True),
        FieldSpec('payload.medications', 'Medications', FieldType.LIST, is_critical=True),
        FieldSpec('payload.antecedents', 'Medical history', FieldType.LIST, is_critical=True),
        FieldSpec('payload.women_specific.is_pregnant', 'Pregnant', FieldType.BOOLEAN, is_critical=True),
        FieldSpec('payload.women_specific.pregnancy_weeks', 'Pregnancy weeks', FieldType.INTEGER),
        FieldSpec('payload.women_specific.last_menstruation', 'Last menstruation', FieldType.DATE),
        FieldSpec('payload.women_specific.family_planning', 'Family planning', FieldType.TEXT),
        FieldSpec('payload.pediatric_specific.has_sucking_habits', 'Sucking habits', FieldType.BOOLEAN),
        FieldSpec('payload.pediatric_specific.breastfeeding_recorded', 'Breastfeeding recorded', FieldType.BOOLEAN),
        FieldSpec('payload.custom_notes', 'Additional notes', FieldType.TEXT),
    )
}

# Fields whose change alone makes a mutation MEDIUM severity
HABIT_FIELD_PATHS = frozenset({'bruxism', 'brushings_per_day', 'uses_dental_floss'})

PREGNANCY_FIELD_PATHS = frozenset({'is_pregnant', 'payload.women_specific.is_pregnant'})

ALLERGY_LIST_PATH = 'payload.allergies'


def spec_for_path(path: str, sample_value: Any = None) -> FieldSpec:
    """Schema entry for ``path``; payload keys outside the schema get an inferred spec."""
    for spec in STRUCTURED_FIELDS:
        if spec.path == path:
            return spec
    if path in PAYLOAD_FIELDS:
        return PAYLOAD_FIELDS[path]
    return FieldSpec(path, _humanize(path.rsplit('.', 1)[-1]), _infer_type(sample_value))


def _humanize(key: str) -> str:
    return key.replace('_', ' ').strip().capitalize() or key


def _infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, int):
        return FieldType.INTEGER
    if isinstance(value, str):
        return FieldType.TEXT
    if isinstance(value, list):
        return FieldType.LIST
    return FieldType.JSON


def render_display(spec: FieldSpec, value: Any) -> Optional[str]:
    """Human-readable rendering of a canonical value."""
    if value is None:
        return None
    if spec.field_type == FieldType.BOOLEAN and isinstance(value, bool):
        return 'Yes' if value else 'No'
    if spec.field_type == FieldType.ENUM and spec.choices:
        return spec.choices.get(value, str(value))
    if spec.field_type == FieldType.SCALE and spec.scale_max:
        return f'{value}/{spec.scale_max}'
    if isinstance(value, list):
        return f"{len(value)} item{'' if len(value) == 1 else 's'}"
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, ensure_ascii=False)
    return str(value)


# ============================================================================
# State value object
# ============================================================================

@dataclass(frozen=True)
class AnamnesisState:
    """
    Content of one anamnesis version, detached from storage.

    Dates are ``datetime.date``; ``payload`` holds JSON-compatible values
    only. ``to_canonical`` is the representation that is hashed and diffed.
    """
    anamnesis_type: str = AnamnesisTypeChoices.ADULT.value
    chief_complaint: Optional[str] = None
    has_pain: bool = False
    pain_intensity: Optional[int] = None
    perceived_urgency: Optional[str] = None
    has_chronic_diseases: bool = False
    has_allergies: bool = False
    has_current_medication: bool = False
    is_pregnant: Optional[bool] = None
    exposed_to_tobacco_smoke: Optional[bool] = None
    bruxism: Optional[bool] = None
    brushings_per_day: Optional[int] = None
    uses_dental_floss: Optional[bool] = None
    last_dental_visit: Optional[datetime.date] = None
    has_sucking_habits: Optional[bool] = None
    breastfeeding_recorded: Optional[bool] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, instance) -> 'AnamnesisState':
        """Build from a PatientAnamnesis or AnamnesisVersion row."""
        values = {name: getattr(instance, name) for name in STRUCTURED_FIELD_NAMES}
        values['payload'] = dict(instance.payload or {})
        return cls(**values)

    @classmethod
    def from_canonical(cls, data: Dict[str, Any]) -> 'AnamnesisState':
        values = {name: data.get(name) for name in STRUCTURED_FIELD_NAMES if name in data}
        if values.get('last_dental_visit'):
            values['last_dental_visit'] = datetime.date.fromisoformat(values['last_dental_visit'])
        values['payload'] = dict(data.get('payload') or {})
        return cls(**values)

    def to_canonical(self) -> Dict[str, Any]:
        data = {}
        for name in STRUCTURED_FIELD_NAMES:
            value = getattr(self, name)
            if isinstance(value, datetime.date):
                value = value.isoformat()
            data[name] = value
        data['payload'] = json.loads(json.dumps(self.payload or {}, sort_keys=True))
        return data

    def model_fields(self) -> Dict[str, Any]:
        """Column values for writing this state to the aggregate or a version row."""
        values = {name: getattr(self, name) for name in STRUCTURED_FIELD_NAMES}
        values['payload'] = self.payload or {}
        return values

    def replace(self, **changes) -> 'AnamnesisState':
        return dataclasses.replace(self, **changes)
