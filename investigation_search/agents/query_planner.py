"""
Query Planner
Splits extracted entities into primary criteria (literal search terms sent to
the search API) and secondary criteria (filters applied to fetched records).
"""

import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from investigation_search.agents.entity_extractor import (
    EntityType,
    ExtractedEntity,
    ExtractionResult,
)
from investigation_search.config import CATEGORY_WEIGHTS

logger = logging.getLogger(__name__)

# ============================================================================
# Enums and data classes
# ============================================================================

class CriterionRole(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SearchStrategy(Enum):
    INTERSECTION = "intersection"
    UNION = "union"


# Entity type -> criterion category
CATEGORY_BY_TYPE = {
    EntityType.PHONE: 'phone',
    EntityType.EMAIL: 'email',
    EntityType.PAN_NUMBER: 'id',
    EntityType.AADHAAR_NUMBER: 'id',
    EntityType.VEHICLE_NUMBER: 'id',
    EntityType.IFSC_CODE: 'id',
    EntityType.ACCOUNT_NUMBER: 'account',
    EntityType.NAME: 'name',
    EntityType.LOCATION: 'location',
    EntityType.ADDRESS: 'location',
    EntityType.COMPANY: 'company',
}

PRIMARY_CATEGORIES = {'phone', 'email', 'id', 'account'}

DESCRIPTION_LABELS = {
    EntityType.PHONE: 'Phone',
    EntityType.EMAIL: 'Email',
    EntityType.PAN_NUMBER: 'PAN',
    EntityType.AADHAAR_NUMBER: 'Aadhaar',
    EntityType.VEHICLE_NUMBER: 'Vehicle',
    EntityType.IFSC_CODE: 'IFSC',
    EntityType.ACCOUNT_NUMBER: 'Account',
    EntityType.NAME: 'Name',
    EntityType.LOCATION: 'Location',
    EntityType.ADDRESS: 'Address',
    EntityType.COMPANY: 'Company',
}


@dataclass(frozen=True)
class Criterion:
    """One search term or filter parsed from the query"""
    id: str
    role: CriterionRole
    category: str
    value: str
    normalized_value: str
    confidence: float
    weight: float
    description: str
    source_type: str

    @property
    def is_primary(self) -> bool:
        return self.role == CriterionRole.PRIMARY

    def promoted(self) -> 'Criterion':
        """Copy of this criterion with the primary role"""
        return Criterion(
            id=self.id,
            role=CriterionRole.PRIMARY,
            category=self.category,
            value=self.value,
            normalized_value=self.normalized_value,
            confidence=self.confidence,
            weight=self.weight,
            description=self.description,
            source_type=self.source_type,
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'role': self.role.value,
            'category': self.category,
            'value': self.value,
            'normalized_value': self.normalized_value,
            'confidence': round(self.confidence, 3),
            'weight': self.weight,
            'description': self.description,
            'source_type': self.source_type,
        }


@dataclass
class QueryPlan:
    """Structured plan for one investigator query"""
    original_query: str
    primary: List[Criterion] = field(default_factory=list)
    secondary: List[Criterion] = field(default_factory=list)
    intent: str = 'Search records'
    search_strategy: SearchStrategy = SearchStrategy.UNION
    promoted_criterion: Optional[str] = None

    @property
    def criteria(self) -> List[Criterion]:
        return self.primary + self.secondary

    @property
    def total_criteria(self) -> int:
        return len(self.primary) + len(self.secondary)

    def get(self, criterion_id: str) -> Optional[Criterion]:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    def to_dict(self) -> Dict:
        return {
            'original_query': self.original_query,
            'primary': [c.to_dict() for c in self.primary],
            'secondary': [c.to_dict() for c in self.secondary],
            'intent': self.intent,
            'search_strategy': self.search_strategy.value,
            'promoted_criterion': self.promoted_criterion,
            'total_criteria': self.total_criteria,
        }


# ============================================================================
# Intent Detection
# ============================================================================

class IntentDetector:
    """Display-only label describing what the query is looking for"""

    INTENT_BY_CATEGORY = [
        ('phone', 'Find person by phone number'),
        ('email', 'Find person by email'),
        ('id', 'Find records by identifier'),
        ('account', 'Find account holder'),
        ('name', 'Find person by name'),
        ('company', 'Find records by company'),
    ]

    @classmethod
    def detect(cls, primary: List[Criterion], secondary: List[Criterion]) -> str:
        categories = {c.category for c in primary}
        intent = 'Search records'
        for category, label in cls.INTENT_BY_CATEGORY:
            if category in categories:
                intent = label
                break

        locations = [c.value for c in secondary if c.category == 'location']
        if locations:
            intent += f" in {locations[0]}"
        return intent


# ============================================================================
# Planner
# ============================================================================

class QueryPlanner:
    """Turns an extraction result into primary and secondary criteria"""

    def __init__(self, category_weights: Optional[Dict[str, float]] = None):
        self.category_weights = dict(CATEGORY_WEIGHTS)
        if category_weights:
            self.category_weights.update(category_weights)

    def _to_criterion(self, entity: ExtractedEntity, index: int) -> Criterion:
        category = CATEGORY_BY_TYPE.get(entity.entity_type, 'keyword')
        role = CriterionRole.PRIMARY if category in PRIMARY_CATEGORIES else CriterionRole.SECONDARY
        label = DESCRIPTION_LABELS.get(entity.entity_type, entity.entity_type.value.replace('_', ' ').title())
        return Criterion(
            id=f"{category}_{index}",
            role=role,
            category=category,
            value=entity.value,
            normalized_value=entity.normalized_value.lower(),
            confidence=entity.confidence,
            weight=self.category_weights.get(category, self.category_weights.get('keyword', 0)),
            description=f"{label}: {entity.value}",
            source_type=entity.entity_type.value,
        )

    def plan(self, query: str, extraction: ExtractionResult) -> QueryPlan:
        primary: List[Criterion] = []
        secondary: List[Criterion] = []

        for index, entity in enumerate(extraction.entities, start=1):
            criterion = self._to_criterion(entity, index)
            if criterion.is_primary:
                primary.append(criterion)
            else:
                secondary.append(criterion)

        promoted_id = None
        # No identifier: the longest secondary value is the most selective search term
        if not primary and secondary:
            promoted = max(secondary, key=lambda c: len(c.normalized_value))
            secondary.remove(promoted)
            primary.append(promoted.promoted())
            promoted_id = promoted.id
            logger.info(f"No identifier in query, promoted {promoted.description} to primary")

        total = len(primary) + len(secondary)
        plan = QueryPlan(
            original_query=query,
            primary=primary,
            secondary=secondary,
            intent=IntentDetector.detect(primary, secondary),
            search_strategy=SearchStrategy.INTERSECTION if total >= 2 else SearchStrategy.UNION,
            promoted_criterion=promoted_id,
        )

        logger.info(
            f"Query planned: primary={[c.description for c in primary]} "
            f"secondary={[c.description for c in secondary]} intent='{plan.intent}'"
        )
        return plan
