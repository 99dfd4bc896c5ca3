"""
Entity Extractor - Free-Text Identifier Recognition
Extracts phones, emails, identity documents, amounts, names and places from
investigator queries, classifies them by search priority, and infers simple
relationships between them.

Extraction runs in priority order. High-value identifiers claim their text
spans first so later passes (names, locations) never re-read their characters.
"""

import re
import time
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from rapidfuzz import fuzz, process

from investigation_search.agents.gazetteer import (
    FIRST_NAMES,
    SURNAMES,
    LOCATIONS,
    STATES,
    FORBIDDEN_NAME_WORDS,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Entity Types and Priorities
# ============================================================================

class EntityType(Enum):
    """Entity types recognised in free text"""
    # Contact / technical identifiers
    PHONE = "phone"
    EMAIL = "email"
    IP_ADDRESS = "ip_address"
    URL = "url"

    # Indian identity documents
    PAN_NUMBER = "pan_number"
    AADHAAR_NUMBER = "aadhaar_number"
    VEHICLE_NUMBER = "vehicle_number"

    # Financial
    ACCOUNT_NUMBER = "account_number"
    IFSC_CODE = "ifsc_code"
    AMOUNT = "amount"

    # Free text
    NAME = "name"
    COMPANY = "company"
    LOCATION = "location"
    ADDRESS = "address"
    PINCODE = "pincode"
    DATE = "date"


class Priority(Enum):
    """How useful an entity is as a literal search term"""
    HIGH = "HIGH"        # unique identifiers, searched directly
    MEDIUM = "MEDIUM"    # can find related records
    LOW = "LOW"          # only useful as a filter


ENTITY_PRIORITY = {
    EntityType.PHONE: Priority.HIGH,
    EntityType.EMAIL: Priority.HIGH,
    EntityType.PAN_NUMBER: Priority.HIGH,
    EntityType.IFSC_CODE: Priority.HIGH,
    EntityType.VEHICLE_NUMBER: Priority.HIGH,
    EntityType.IP_ADDRESS: Priority.HIGH,
    EntityType.URL: Priority.HIGH,
    EntityType.ADDRESS: Priority.MEDIUM,
    EntityType.ACCOUNT_NUMBER: Priority.MEDIUM,
    EntityType.AADHAAR_NUMBER: Priority.LOW,
    EntityType.AMOUNT: Priority.LOW,
    EntityType.PINCODE: Priority.LOW,
    EntityType.DATE: Priority.LOW,
    EntityType.NAME: Priority.LOW,
    EntityType.COMPANY: Priority.LOW,
    EntityType.LOCATION: Priority.LOW,
}


@dataclass
class ExtractedEntity:
    """A single entity found in the input text"""
    entity_type: EntityType
    value: str
    normalized_value: str
    original_text: str
    confidence: float
    start: int = -1
    end: int = -1
    method: str = 'regex'

    @property
    def priority(self) -> Priority:
        return ENTITY_PRIORITY[self.entity_type]

    @property
    def key(self) -> Tuple[str, str]:
        return (self.entity_type.value, self.normalized_value)

    def __str__(self):
        return f"{self.entity_type.value}: {self.value} (confidence: {self.confidence:.2f})"

    def to_dict(self) -> Dict:
        return {
            'type': self.entity_type.value,
            'value': self.value,
            'normalized_value': self.normalized_value,
            'original_text': self.original_text,
            'priority': self.priority.value,
            'confidence': round(self.confidence, 3),
            'position': {'start': self.start, 'end': self.end} if self.start >= 0 else None,
            'method': self.method,
        }


@dataclass
class EntityRelationship:
    """Relationship between two entities stated or implied in the text"""
    source: ExtractedEntity
    target: ExtractedEntity
    relationship_type: str
    context: str

    def to_dict(self) -> Dict:
        return {
            'source': self.source.to_dict(),
            'target': self.target.to_dict(),
            'relationship_type': self.relationship_type,
            'context': self.context,
        }


@dataclass
class ExtractionResult:
    """Everything one extraction run produced"""
    entities: List[ExtractedEntity] = field(default_factory=list)
    relationships: List[EntityRelationship] = field(default_factory=list)
    strategy: str = 'regex'
    extraction_time_ms: float = 0.0

    @property
    def high_value(self) -> List[ExtractedEntity]:
        return [e for e in self.entities if e.priority == Priority.HIGH]

    @property
    def medium_value(self) -> List[ExtractedEntity]:
        return [e for e in self.entities if e.priority == Priority.MEDIUM]

    @property
    def low_value(self) -> List[ExtractedEntity]:
        return [e for e in self.entities if e.priority == Priority.LOW]

    def by_type(self, entity_type: EntityType) -> List[ExtractedEntity]:
        return [e for e in self.entities if e.entity_type == entity_type]

    def to_dict(self) -> Dict:
        return {
            'entities': [e.to_dict() for e in self.entities],
            'high_value': [e.to_dict() for e in self.high_value],
            'medium_value': [e.to_dict() for e in self.medium_value],
            'low_value': [e.to_dict() for e in self.low_value],
            'relationships': [r.to_dict() for r in self.relationships],
            'strategy': self.strategy,
            'extraction_time_ms': round(self.extraction_time_ms, 2),
        }


# ============================================================================
# Normalizers
# ============================================================================

def normalize_phone(raw: str) -> Optional[str]:
    """
    Normalize a phone number to digits only.

    "+91 98765-43210" and "9876543210" both give "9876543210". Returns None
    when the digits do not look like any phone number.
    """
    digits = re.sub(r'\D', '', raw or '')

    if len(digits) == 12 and digits.startswith('91'):
        digits = digits[2:]
    elif len(digits) == 13 and digits.startswith('091'):
        digits = digits[3:]

    if len(digits) == 10 and digits[0] in '6789':
        return digits

    # Landline or international
    if 8 <= len(digits) <= 15:
        return digits

    return None


AMOUNT_MULTIPLIERS = {
    'lakh': 100000,
    'lac': 100000,
    'crore': 10000000,
    'million': 1000000,
    'billion': 1000000000,
}


def normalize_amount(raw: str) -> Optional[str]:
    """Turn "Rs. 1,50,000" or "5 lakh" into a plain rupee figure, or None for noise"""
    text = raw.lower()
    number = re.search(r'\d[\d,]*(?:\.\d+)?', text)
    if not number:
        return None

    grouped = ',' in number.group(0)
    numeric_str = number.group(0).replace(',', '')
    integer_digits = numeric_str.split('.')[0]

    # Bare digit runs shaped like pincodes or phones; "1,50,000" is written as money
    if not grouped and re.match(r'^[1-8]\d{5}$', integer_digits):
        return None
    if not grouped and re.match(r'^[6-9]\d{9}$', integer_digits):
        return None
    if len(integer_digits) > 15:
        return None

    value = float(numeric_str)
    for word, multiplier in AMOUNT_MULTIPLIERS.items():
        if word in text:
            value *= multiplier
            break

    if value < 100:
        return None

    return str(int(value)) if value == int(value) else f"{value:.2f}"


DATE_FORMATS = [
    '%d/%m/%Y', '%d-%m-%Y', '%d/%m/%y', '%d-%m-%y',
    '%Y-%m-%d', '%Y/%m/%d',
    '%d %B %Y', '%d %b %Y', '%d %B %y', '%d %b %y',
]


def normalize_date(raw: str) -> str:
    """ISO date when the text parses, otherwise the text as given"""
    cleaned = re.sub(r'(\d)(st|nd|rd|th)\b', r'\1', raw.strip(), flags=re.IGNORECASE)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).strftime('%Y-%m-%d')
        except ValueError:
            continue
    return cleaned.lower()


def capitalize_name(name: str) -> str:
    return ' '.join(part[:1].upper() + part[1:].lower() for part in name.split())


# ============================================================================
# Pattern Registry with Compiled Regex
# ============================================================================

class PatternRegistry:
    """Pre-compiled patterns for every regex-recognised entity type"""

    PHONE = [
        # +91 98765 43210, 91-9876543210
        re.compile(r'(?<![\w+])\+?91[-.\s]?[6-9]\d{4}[-.\s]?\d{5}(?!\d)'),
        # 9876543210, 98765-43210
        re.compile(r'(?<![\w+])[6-9]\d{4}[-.\s]?\d{5}(?!\d)'),
        # 987 654 3210
        re.compile(r'(?<![\w+])[6-9]\d{2}\s\d{3}\s\d{4}(?!\d)'),
        # Landline: 040-23456789
        re.compile(r'(?<![\w+])0\d{2,4}[-.\s]?\d{6,8}(?!\d)'),
        # International: +44 2071234567
        re.compile(r'(?<!\w)\+\d{1,3}[-.\s]?\d{8,14}(?!\d)'),
    ]

    EMAIL = [
        re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
    ]

    PAN = [
        re.compile(r'\b(?:PAN[:\s]+)?([A-Z]{3}[ABCFGHLJPT][A-Z]\d{4}[A-Z])\b', re.IGNORECASE),
    ]

    IFSC = [
        re.compile(r'\b(?:IFSC[:\s]+)?([A-Z]{4}0[A-Z0-9]{6})\b'),
    ]

    VEHICLE = [
        re.compile(r'\b([A-Z]{2}[-\s]?\d{1,2}[-\s]?[A-Z]{1,3}[-\s]?\d{4})\b', re.IGNORECASE),
    ]

    IP_ADDRESS = [
        re.compile(r'\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b'),
    ]

    URL = [
        re.compile(r'https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b[-a-zA-Z0-9()@:%_+.~#?&/=]*', re.IGNORECASE),
        re.compile(r'\bwww\.[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b[-a-zA-Z0-9()@:%_+.~#?&/=]*', re.IGNORECASE),
    ]

    # Contextual identifiers: only with an explicit keyword in front
    AADHAAR = [
        re.compile(r'\b(?:aadhaar|aadhar|uid)(?:\s+(?:no|number))?[:.\s]+(\d{4}[\s-]?\d{4}[\s-]?\d{4})\b', re.IGNORECASE),
    ]

    ACCOUNT = [
        re.compile(r'(?<!\w)(?:a/c|account|acc|acct)(?:\s+(?:no|number))?[:.\s]+(\d{9,18})\b', re.IGNORECASE),
    ]

    PINCODE = [
        re.compile(r'\b(?:pin|pincode|postal)(?:\s+code)?[:\s]+(\d{6})\b', re.IGNORECASE),
    ]

    AMOUNT = [
        re.compile(r'(?<![A-Za-z])(?:Rs\.?|INR|₹)\s*\d[\d,]*(?:\.\d{1,2})?', re.IGNORECASE),
        re.compile(r'\b\d+(?:\.\d+)?\s*(?:lakh|lac|crore|million|billion)s?\b', re.IGNORECASE),
        re.compile(r'[$€£¥]\s*\d+(?:,\d{3})*(?:\.\d{2})?\b'),
    ]

    DATE = [
        re.compile(r'\b\d{1,2}[-/]\d{1,2}[-/]\d{2,4}\b'),
        re.compile(r'\b\d{1,2}(?:st|nd|rd|th)?\s+(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|Aug(?:ust)?|Sep(?:tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\s+\d{2,4}\b', re.IGNORECASE),
        re.compile(r'\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b'),
    ]

    ADDRESS = [
        re.compile(r'\b(?:flat|house|h\.?\s?no|plot|shop|door|room)[:.\s#-]*\d+[a-z]?(?:[\s,/-]+[\w]+){1,8}', re.IGNORECASE),
        re.compile(r'\b\d+[\w/-]*(?:[\s,]+[\w]+){0,4}?[\s,]+(?:street|road|lane|colony|nagar|layout|chowk|marg)\b', re.IGNORECASE),
    ]

    COMPANY = [
        re.compile(r'\b((?:[A-Z][A-Za-z&]+\s+){0,4}[A-Z][A-Za-z&]+)\s+(?:Pvt\.?\s*|Private\s+)?(?:Ltd\.?|Limited|Inc\.?|Corporation|Corp\.?|LLP|LLC)(?!\w)'),
        re.compile(r'\b(?:company|firm|business|enterprise)[:\s]+((?:[A-Z][A-Za-z&]+)(?:\s+[A-Z][A-Za-z&]+)*)'),
    ]

    HONORIFIC_NAME = [
        re.compile(r'(?i:\b(?:mr|mrs|ms|dr|sri|shri|smt|shrimati))\.?\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,3})'),
        re.compile(r'(?i:\b(?:named|called|known\s+as|alias))[:\s]+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,3})'),
    ]

    WORD = re.compile(r"[A-Za-z][A-Za-z'-]*")

    NUMBER_KEYWORD_BEFORE = re.compile(
        r'(?:a/c|account|acc|acct|aadhaar|aadhar|uid)(?:\s+(?:no|number))?[:.\s]*$', re.IGNORECASE
    )


# Registration state codes accepted as the first two letters of a vehicle number
VEHICLE_STATE_CODES = {
    'AN', 'AP', 'AR', 'AS', 'BR', 'CG', 'CH', 'DD', 'DL', 'DN', 'GA', 'GJ', 'HP',
    'HR', 'JH', 'JK', 'KA', 'KL', 'LA', 'LD', 'MH', 'ML', 'MN', 'MP', 'MZ', 'NL',
    'OD', 'OR', 'PB', 'PY', 'RJ', 'SK', 'TG', 'TN', 'TR', 'TS', 'UK', 'UP', 'UT',
    'WB', 'BH',
}

# ============================================================================
# Validators
# ============================================================================

class EntityValidator:
    """Validates detected identifiers"""

    @staticmethod
    def validate_aadhaar(value: str) -> Tuple[bool, str]:
        clean = re.sub(r'\D', '', value)
        if len(clean) != 12:
            return False, "Invalid format"
        # Aadhaar cannot start with 0 or 1
        if clean[0] in '01':
            return False, "Cannot start with 0 or 1"
        return True, "Valid"

    @staticmethod
    def validate_pan(value: str) -> Tuple[bool, str]:
        if not re.match(r'^[A-Z]{5}\d{4}[A-Z]$', value.upper()):
            return False, "Invalid format"
        return True, "Valid"

    @staticmethod
    def validate_vehicle_number(value: str) -> Tuple[bool, str]:
        clean = re.sub(r'[-\s]', '', value).upper()
        if not re.match(r'^[A-Z]{2}\d{1,2}[A-Z]{1,3}\d{4}$', clean):
            return False, "Invalid format"
        if clean[:2] not in VEHICLE_STATE_CODES:
            return False, "Unknown state code"
        return True, "Valid"

    @staticmethod
    def validate_ifsc_code(value: str) -> Tuple[bool, str]:
        if not re.match(r'^[A-Z]{4}0[A-Z0-9]{6}$', value):
            return False, "Invalid format"
        return True, "Valid"

    @staticmethod
    def validate_email(value: str) -> Tuple[bool, str]:
        if '@' not in value or '.' not in value.split('@')[1]:
            return False, "Invalid format"
        return True, "Valid"


# ============================================================================
# Context Analyzer
# ============================================================================

class ContextAnalyzer:
    """Boosts or reduces confidence from keywords just before an entity"""

    WINDOW = 40

    CONTEXT_KEYWORDS = {
        EntityType.PHONE: {
            'boost': ['mobile', 'phone', 'contact', 'call', 'number', 'cell'],
            'reduce': ['date', 'year', 'age', 'amount']
        },
        EntityType.EMAIL: {
            'boost': ['email', 'mail', 'e-mail'],
            'reduce': []
        },
        EntityType.NAME: {
            'boost': ['name', 'person', 'accused', 'suspect', 'victim', 'mr', 'son of', 's/o'],
            'reduce': ['street', 'road', 'nagar', 'colony', 'station']
        },
        EntityType.LOCATION: {
            'boost': ['from', 'in', 'at', 'resident', 'living', 'city', 'district', 'near'],
            'reduce': ['mr', 'named']
        },
        EntityType.AMOUNT: {
            'boost': ['paid', 'transferred', 'amount', 'sent', 'received', 'loan'],
            'reduce': []
        },
        EntityType.VEHICLE_NUMBER: {
            'boost': ['vehicle', 'car', 'bike', 'registration', 'plate'],
            'reduce': []
        },
    }

    @classmethod
    def analyze_context(cls, entity: ExtractedEntity, text: str) -> float:
        """Return the confidence adjustment for an entity at its position"""
        if entity.start < 0:
            return 0.0
        context = cls.CONTEXT_KEYWORDS.get(entity.entity_type)
        if not context:
            return 0.0

        window = text[max(0, entity.start - cls.WINDOW):entity.start].lower()
        adjustment = 0.0
        for keyword in context['boost']:
            if re.search(r'\b' + re.escape(keyword) + r'\b', window):
                adjustment += 0.05
        for keyword in context['reduce']:
            if re.search(r'\b' + re.escape(keyword) + r'\b', window):
                adjustment -= 0.10
        return adjustment


# ============================================================================
# Span Claiming
# ============================================================================

class SpanTracker:
    """Character ranges already consumed by a higher-priority entity"""

    def __init__(self):
        self._spans: List[Tuple[int, int]] = []

    def claim(self, start: int, end: int):
        self._spans.append((start, end))

    def is_claimed(self, start: int, end: int) -> bool:
        return any(start < s_end and s_start < end for s_start, s_end in self._spans)


# ============================================================================
# Relationship keywords
# ============================================================================

# Longer phrases first so "living in" wins over "in"
RELATIONSHIP_KEYWORDS = [
    ('family', ['son of', 'daughter of', 'father of', 'mother of', 'brother of', 'sister of',
                'husband of', 'wife of', 'cousin of', 'uncle of', 'aunt of', 's/o', 'd/o', 'w/o']),
    ('employment', ['works at', 'working for', 'working at', 'employed at', 'employee of', 'job at']),
    ('association', ['connected to', 'linked to', 'associated with', 'related to', 'relation to',
                     'knows', 'friend of', 'colleague of', 'partner of']),
    ('contact', ['having phone', 'phone number', 'mobile number', 'phone', 'mobile', 'contact',
                 'email', 'mail']),
    ('ownership', ['owner of', 'owns', 'possesses', 'has']),
    ('location', ['living in', 'residing in', 'resident of', 'based in', 'staying in',
                  'located in', 'from', 'in', 'at']),
]

RELATION_TARGETS = {
    'location': {EntityType.LOCATION, EntityType.ADDRESS},
    'contact': {EntityType.PHONE, EntityType.EMAIL},
    'employment': {EntityType.COMPANY},
    'family': {EntityType.NAME},
    'association': {EntityType.NAME, EntityType.COMPANY},
    'ownership': {EntityType.VEHICLE_NUMBER, EntityType.ACCOUNT_NUMBER, EntityType.COMPANY,
                  EntityType.ADDRESS, EntityType.PHONE},
}

RELATION_WINDOW = 60
CONTACT_WINDOW = 50


# ============================================================================
# Extraction Strategies
# ============================================================================

class ExtractionStrategy:
    """
    Base class for extraction strategies.

    A strategy turns text into a flat list of entities. Deduplication and
    relationship inference are done once by EntityExtractor for every strategy.
    """

    name = 'base'

    def extract(self, text: str) -> List[ExtractedEntity]:
        raise NotImplementedError("Subclasses must implement extract method")


class RegexStrategy(ExtractionStrategy):
    """Patterns plus dictionary lookups, no fuzzy matching"""

    name = 'regex'

    def extract(self, text: str) -> List[ExtractedEntity]:
        spans = SpanTracker()
        entities: List[ExtractedEntity] = []

        # STEP 1: high-priority identifiers claim their spans
        entities.extend(self._extract_urls(text, spans))
        entities.extend(self._extract_emails(text, spans))
        entities.extend(self._extract_ip_addresses(text, spans))
        entities.extend(self._extract_pan_numbers(text, spans))
        entities.extend(self._extract_ifsc_codes(text, spans))
        entities.extend(self._extract_vehicle_numbers(text, spans))
        entities.extend(self._extract_phones(text, spans))

        # STEP 2: keyword-qualified numbers, amounts and dates
        entities.extend(self._extract_aadhaar_numbers(text, spans))
        entities.extend(self._extract_account_numbers(text, spans))
        entities.extend(self._extract_pincodes(text, spans))
        entities.extend(self._extract_amounts(text, spans))
        entities.extend(self._extract_dates(text, spans))

        # STEP 3: structured free text
        entities.extend(self._extract_addresses(text, spans))
        entities.extend(self._extract_companies(text, spans))

        # STEP 4: dictionary scanning over unclaimed text
        entities.extend(self._extract_names(text, spans))
        entities.extend(self._extract_locations(text, spans))

        return entities

    # ------------------------------------------------------------------
    # High priority
    # ------------------------------------------------------------------

    def _extract_phones(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.PHONE:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                # Digits after "account:" or "aadhaar:" belong to those extractors
                if PatternRegistry.NUMBER_KEYWORD_BEFORE.search(text[max(0, match.start() - 20):match.start()]):
                    continue
                normalized = normalize_phone(match.group(0))
                if not normalized:
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.PHONE,
                    value=normalized,
                    normalized_value=normalized,
                    original_text=match.group(0),
                    confidence=0.95 if len(normalized) == 10 else 0.80,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_emails(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.EMAIL:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                value = match.group(0)
                is_valid, _ = EntityValidator.validate_email(value)
                if not is_valid:
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.EMAIL,
                    value=value.lower(),
                    normalized_value=value.lower(),
                    original_text=value,
                    confidence=0.98,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_pan_numbers(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.PAN:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                pan = match.group(1).upper()
                is_valid, _ = EntityValidator.validate_pan(pan)
                if not is_valid:
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.PAN_NUMBER,
                    value=pan,
                    normalized_value=pan,
                    original_text=match.group(0),
                    confidence=0.95,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_ifsc_codes(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.IFSC:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                ifsc = match.group(1).upper()
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.IFSC_CODE,
                    value=ifsc,
                    normalized_value=ifsc,
                    original_text=match.group(0),
                    confidence=0.95,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_vehicle_numbers(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.VEHICLE:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                is_valid, _ = EntityValidator.validate_vehicle_number(match.group(1))
                if not is_valid:
                    continue
                vehicle = re.sub(r'[-\s]', '', match.group(1)).upper()
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.VEHICLE_NUMBER,
                    value=vehicle,
                    normalized_value=vehicle,
                    original_text=match.group(0),
                    confidence=0.90,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_ip_addresses(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.IP_ADDRESS:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.IP_ADDRESS,
                    value=match.group(0),
                    normalized_value=match.group(0),
                    original_text=match.group(0),
                    confidence=0.90,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_urls(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.URL:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                url = match.group(0).rstrip('.,)')
                spans.claim(match.start(), match.start() + len(url))
                entities.append(ExtractedEntity(
                    entity_type=EntityType.URL,
                    value=url,
                    normalized_value=url.lower(),
                    original_text=url,
                    confidence=0.95,
                    start=match.start(),
                    end=match.start() + len(url),
                ))
        return entities

    # ------------------------------------------------------------------
    # Contextual numbers
    # ------------------------------------------------------------------

    def _extract_aadhaar_numbers(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.AADHAAR:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(1), match.end(1)):
                    continue
                is_valid, status = EntityValidator.validate_aadhaar(match.group(1))
                if not is_valid:
                    logger.debug(f"Skipping Aadhaar candidate {match.group(1)}: {status}")
                    continue
                digits = re.sub(r'\D', '', match.group(1))
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.AADHAAR_NUMBER,
                    value=digits,
                    normalized_value=digits,
                    original_text=match.group(0),
                    confidence=0.92,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_account_numbers(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.ACCOUNT:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(1), match.end(1)):
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.ACCOUNT_NUMBER,
                    value=match.group(1),
                    normalized_value=match.group(1),
                    original_text=match.group(0),
                    confidence=0.95,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_pincodes(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.PINCODE:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(1), match.end(1)):
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.PINCODE,
                    value=match.group(1),
                    normalized_value=match.group(1),
                    original_text=match.group(0),
                    confidence=0.95,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_amounts(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.AMOUNT:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                normalized = normalize_amount(match.group(0))
                if normalized is None:
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.AMOUNT,
                    value=match.group(0).strip(),
                    normalized_value=normalized,
                    original_text=match.group(0),
                    confidence=0.85,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    def _extract_dates(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.DATE:
            for match in pattern.finditer(text):
                date_str = match.group(0)
                # Very short matches are noise
                if len(date_str) < 6 or spans.is_claimed(match.start(), match.end()):
                    continue
                spans.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.DATE,
                    value=date_str,
                    normalized_value=normalize_date(date_str),
                    original_text=date_str,
                    confidence=0.85,
                    start=match.start(),
                    end=match.end(),
                ))
        return entities

    # ------------------------------------------------------------------
    # Structured free text
    # ------------------------------------------------------------------

    def _extract_addresses(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.ADDRESS:
            for match in pattern.finditer(text):
                address = match.group(0).strip(' ,')
                if len(address) <= 10 or not re.search(r'\d', address):
                    continue
                if spans.is_claimed(match.start(), match.end()):
                    continue
                # Addresses do not claim their span; names and places inside stay visible
                entities.append(ExtractedEntity(
                    entity_type=EntityType.ADDRESS,
                    value=address,
                    normalized_value=re.sub(r'\s+', ' ', address.lower()),
                    original_text=address,
                    confidence=0.80,
                    start=match.start(),
                    end=match.start() + len(address),
                ))
        return entities

    def _extract_companies(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        for pattern in PatternRegistry.COMPANY:
            for match in pattern.finditer(text):
                if spans.is_claimed(match.start(), match.end()):
                    continue
                name = match.group(1).strip()
                entities.append(ExtractedEntity(
                    entity_type=EntityType.COMPANY,
                    value=name,
                    normalized_value=name.lower(),
                    original_text=match.group(0),
                    confidence=0.80,
                    start=match.start(1),
                    end=match.end(1),
                ))
        return entities

    # ------------------------------------------------------------------
    # Dictionary scanning
    # ------------------------------------------------------------------

    def _name_tokens(self, text: str, spans: SpanTracker) -> List[Tuple[str, int, int]]:
        """Lowercase word tokens with their positions, skipping claimed text"""
        tokens = []
        for match in PatternRegistry.WORD.finditer(text):
            if spans.is_claimed(match.start(), match.end()):
                tokens.append(('', match.start(), match.end()))
                continue
            tokens.append((match.group(0).lower().strip("'-"), match.start(), match.end()))
        return tokens

    def _is_first_name(self, word: str) -> bool:
        return word in FIRST_NAMES

    def _is_surname(self, word: str) -> bool:
        return word in SURNAMES

    def _extract_names(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        tokens = self._name_tokens(text, spans)
        i = 0
        while i < len(tokens):
            word, start, end = tokens[i]
            if not word or word in FORBIDDEN_NAME_WORDS or not 2 <= len(word) <= 20:
                i += 1
                continue

            is_first = self._is_first_name(word)
            if not is_first and not self._is_surname(word):
                i += 1
                continue

            # Merge adjacent dictionary hits into one multi-token name
            parts = [word]
            name_end = end
            j = i + 1
            while j < len(tokens):
                next_word, next_start, next_end = tokens[j]
                gap = text[name_end:next_start]
                if not next_word or gap.strip() or next_word in FORBIDDEN_NAME_WORDS:
                    break
                if not (self._is_first_name(next_word) or self._is_surname(next_word)):
                    break
                parts.append(next_word)
                name_end = next_end
                j += 1

            full_name = ' '.join(parts)
            if len(parts) > 1 and self._is_surname(parts[-1]):
                confidence = 0.90
            elif is_first:
                confidence = 0.75
            else:
                confidence = 0.70

            entities.append(ExtractedEntity(
                entity_type=EntityType.NAME,
                value=capitalize_name(full_name),
                normalized_value=full_name,
                original_text=text[start:name_end],
                confidence=confidence,
                start=start,
                end=name_end,
                method='dictionary',
            ))
            i = j

        for pattern in PatternRegistry.HONORIFIC_NAME:
            for match in pattern.finditer(text):
                words = []
                for part in match.group(1).split():
                    if part.lower() in FORBIDDEN_NAME_WORDS:
                        break
                    words.append(part)
                if not words or spans.is_claimed(match.start(1), match.end(1)):
                    continue
                name = ' '.join(words)
                entities.append(ExtractedEntity(
                    entity_type=EntityType.NAME,
                    value=capitalize_name(name),
                    normalized_value=name.lower(),
                    original_text=name,
                    confidence=0.85,
                    start=match.start(1),
                    end=match.start(1) + len(name),
                ))

        return entities

    def _extract_locations(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = []
        text_lower = text.lower()
        local = SpanTracker()

        # Longest names first so "new delhi" is not also read as "delhi"
        candidates = sorted(LOCATIONS, key=len, reverse=True)
        for place in candidates:
            if place not in text_lower:
                continue
            for match in re.finditer(r'\b' + re.escape(place) + r'\b', text_lower):
                if spans.is_claimed(match.start(), match.end()) or local.is_claimed(match.start(), match.end()):
                    continue
                local.claim(match.start(), match.end())
                entities.append(ExtractedEntity(
                    entity_type=EntityType.LOCATION,
                    value=capitalize_name(place),
                    normalized_value=place,
                    original_text=text[match.start():match.end()],
                    confidence=0.90 if place in STATES else 0.85,
                    start=match.start(),
                    end=match.end(),
                    method='dictionary',
                ))
        return entities


class HybridStrategy(RegexStrategy):
    """
    Regex and dictionaries, plus fuzzy dictionary matching for misspelt
    names and places, plus keyword context confidence adjustment.
    """

    name = 'hybrid'

    FUZZY_CUTOFF = 88
    MIN_FUZZY_LENGTH = 5

    def __init__(self):
        self._first_names = sorted(FIRST_NAMES)
        self._surnames = sorted(SURNAMES)
        self._places = sorted(p for p in LOCATIONS if ' ' not in p)

    def extract(self, text: str) -> List[ExtractedEntity]:
        entities = super().extract(text)
        for entity in entities:
            adjustment = ContextAnalyzer.analyze_context(entity, text)
            if adjustment:
                entity.confidence = max(0.0, min(1.0, entity.confidence + adjustment))
        return entities

    def _fuzzy_lookup(self, word: str, choices: List[str]) -> Optional[str]:
        if len(word) < self.MIN_FUZZY_LENGTH:
            return None
        best = process.extractOne(word, choices, scorer=fuzz.ratio, score_cutoff=self.FUZZY_CUTOFF)
        return best[0] if best else None

    def _is_first_name(self, word: str) -> bool:
        return word in FIRST_NAMES or (
            word not in FORBIDDEN_NAME_WORDS and self._fuzzy_lookup(word, self._first_names) is not None
        )

    def _is_surname(self, word: str) -> bool:
        return word in SURNAMES or (
            word not in FORBIDDEN_NAME_WORDS and self._fuzzy_lookup(word, self._surnames) is not None
        )

    def _extract_names(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = super()._extract_names(text, spans)
        for entity in entities:
            if entity.method != 'dictionary':
                continue
            tokens = entity.normalized_value.split()
            if any(t not in FIRST_NAMES and t not in SURNAMES for t in tokens):
                # Fuzzy hit: keep the text as written, at lower confidence
                entity.confidence = max(0.5, entity.confidence - 0.15)
                entity.method = 'fuzzy'
        return entities

    def _extract_locations(self, text: str, spans: SpanTracker) -> List[ExtractedEntity]:
        entities = super()._extract_locations(text, spans)
        found = {e.normalized_value for e in entities}
        taken = SpanTracker()
        for entity in entities:
            taken.claim(entity.start, entity.end)

        for match in PatternRegistry.WORD.finditer(text):
            word = match.group(0).lower()
            if word in FORBIDDEN_NAME_WORDS or word in FIRST_NAMES or word in SURNAMES:
                continue
            if spans.is_claimed(match.start(), match.end()) or taken.is_claimed(match.start(), match.end()):
                continue
            place = self._fuzzy_lookup(word, self._places)
            if place is None or place in found:
                continue
            found.add(place)
            entities.append(ExtractedEntity(
                entity_type=EntityType.LOCATION,
                value=capitalize_name(place),
                normalized_value=place,
                original_text=match.group(0),
                confidence=0.70,
                start=match.start(),
                end=match.end(),
                method='fuzzy',
            ))
        return entities


STRATEGIES = {
    RegexStrategy.name: RegexStrategy,
    HybridStrategy.name: HybridStrategy,
}


def get_strategy(name: str) -> ExtractionStrategy:
    """Build a strategy by its configured name"""
    try:
        return STRATEGIES[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown extraction strategy '{name}' (choose from {', '.join(STRATEGIES)})")


# ============================================================================
# Main Entity Extractor
# ============================================================================

class EntityExtractor:
    """
    Single entry point for entity extraction.

    The strategy decides how entities are found; deduplication and
    relationship inference are the same for every strategy. An extractor
    keeps no state between calls.
    """

    def __init__(self, strategy: Optional[ExtractionStrategy] = None, infer_relationships: bool = True):
        self.strategy = strategy or HybridStrategy()
        self.infer_relationships = infer_relationships

    @classmethod
    def from_name(cls, name: str, **kwargs) -> 'EntityExtractor':
        return cls(strategy=get_strategy(name), **kwargs)

    def extract(self, text: str) -> ExtractionResult:
        """
        Extract all entities from text.

        Raises:
            TypeError: if text is not a string
        """
        if not isinstance(text, str):
            raise TypeError(f"Query must be a string, got {type(text).__name__}")

        start_time = time.time()
        raw_entities = self.strategy.extract(text)
        entities = self.deduplicate(raw_entities)
        entities.sort(key=lambda e: (e.start if e.start >= 0 else len(text), -e.confidence))

        relationships = self.extract_relationships(text, entities) if self.infer_relationships else []

        result = ExtractionResult(
            entities=entities,
            relationships=relationships,
            strategy=self.strategy.name,
            extraction_time_ms=(time.time() - start_time) * 1000,
        )
        logger.debug(
            f"Extracted {len(entities)} entities ({len(result.high_value)} high, "
            f"{len(result.medium_value)} medium, {len(result.low_value)} low) "
            f"and {len(relationships)} relationships"
        )
        return result

    @staticmethod
    def deduplicate(entities: List[ExtractedEntity]) -> List[ExtractedEntity]:
        """Merge entities sharing (type, normalized value), keeping the most confident"""
        seen: Dict[Tuple[str, str], ExtractedEntity] = {}
        for entity in entities:
            existing = seen.get(entity.key)
            if existing is None or entity.confidence > existing.confidence:
                seen[entity.key] = entity
        return list(seen.values())

    @staticmethod
    def _relation_keyword(gap: str) -> Optional[str]:
        gap = gap.lower()
        for relationship_type, keywords in RELATIONSHIP_KEYWORDS:
            for keyword in keywords:
                if re.search(r'(?<!\w)' + re.escape(keyword) + r'(?!\w)', gap):
                    return relationship_type
        return None

    def extract_relationships(self, text: str, entities: List[ExtractedEntity]) -> List[EntityRelationship]:
        relationships = []
        seen = set()
        positioned = [e for e in entities if e.start >= 0]
        subjects = (EntityType.NAME, EntityType.COMPANY)

        # Keyword-bridged relations between neighbouring entities
        for left, right in zip(positioned, positioned[1:]):
            if left.entity_type not in subjects:
                continue
            if right.start < left.end or right.start - left.end > RELATION_WINDOW:
                continue
            relationship_type = self._relation_keyword(text[left.end:right.start])
            if relationship_type is None or right.entity_type not in RELATION_TARGETS[relationship_type]:
                continue
            key = (left.key, right.key, relationship_type)
            if key in seen:
                continue
            seen.add(key)
            relationships.append(EntityRelationship(
                source=left,
                target=right,
                relationship_type=relationship_type,
                context=text[left.start:right.end],
            ))

        # A name close to a phone number is that person's contact
        for name in (e for e in positioned if e.entity_type == EntityType.NAME):
            for phone in (e for e in positioned if e.entity_type == EntityType.PHONE):
                if abs(name.start - phone.start) >= CONTACT_WINDOW:
                    continue
                key = (name.key, phone.key, 'contact')
                if key in seen:
                    continue
                seen.add(key)
                relationships.append(EntityRelationship(
                    source=name,
                    target=phone,
                    relationship_type='contact',
                    context=f"{name.value} has phone {phone.value}",
                ))

        return relationships
