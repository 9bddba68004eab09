"""
Compliance Type Definitions

Dataclasses for deal snapshots, rule-set configuration and evaluation output.
Rule-set configuration objects are built only from schema-validated dicts
(see schemas.py) and are immutable after construction.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class DealType(Enum):
    """How the deal is paid for."""
    CASH = "CASH"
    FINANCE = "FINANCE"
    LEASE = "LEASE"


class DocumentType(Enum):
    """Legal document codes a checklist can require."""
    BUYERS_ORDER = "BUYERS_ORDER"
    ODOMETER_DISCLOSURE = "ODOMETER_DISCLOSURE"
    RETAIL_INSTALLMENT_CONTRACT = "RETAIL_INSTALLMENT_CONTRACT"
    PRIVACY_NOTICE = "PRIVACY_NOTICE"
    TITLE_REG_APPLICATION = "TITLE_REG_APPLICATION"
    WE_OWE = "WE_OWE"
    POWER_OF_ATTORNEY = "POWER_OF_ATTORNEY"


ComputedValue = Union[str, int, float, bool, None]


# =============================================================================
# DEAL SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class CustomerInfo:
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class VehicleInfo:
    year: int
    make: str
    model: str
    vin: str
    mileage: int
    stock_number: str
    gvwr: Optional[float] = None


@dataclass(frozen=True)
class DealerInfo:
    name: str
    tax_rate: float
    doc_fee: float
    license_fee: float


@dataclass(frozen=True)
class DealSnapshot:
    """
    Denormalized, read-only view of a deal for one compliance evaluation.

    Built fresh from the deal every time it is evaluated and never cached
    across deal mutations.
    """
    deal_id: str
    org_id: str
    jurisdiction: str
    deal_type: DealType
    has_trade_in: bool
    is_financed: bool
    has_lienholder: bool
    sale_price: float
    financed_amount: float
    customer: CustomerInfo
    vehicle: VehicleInfo
    dealer: DealerInfo
    buyer_state: Optional[str] = None

    @property
    def is_out_of_state_buyer(self) -> bool:
        """Derived: buyer state is known and differs from the jurisdiction."""
        return bool(self.buyer_state) and self.buyer_state != self.jurisdiction

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DealSnapshot':
        """
        Create a snapshot from its camelCase JSON form.

        The dict is expected to have passed the deal snapshot schema already.
        """
        customer = data['customer']
        vehicle = data['vehicle']
        dealer = data['dealer']
        buyer_state = data.get('buyerState')

        return cls(
            deal_id=str(data['dealId']),
            org_id=str(data['orgId']),
            jurisdiction=data['jurisdiction'].strip().upper(),
            buyer_state=buyer_state.strip().upper() if buyer_state else None,
            deal_type=DealType(data['dealType']),
            has_trade_in=data['hasTradeIn'],
            is_financed=data['isFinanced'],
            has_lienholder=data['hasLienholder'],
            sale_price=data['salePrice'],
            financed_amount=data['financedAmount'],
            customer=CustomerInfo(
                first_name=customer['firstName'],
                last_name=customer['lastName'],
                email=customer.get('email'),
                phone=customer.get('phone')
            ),
            vehicle=VehicleInfo(
                year=vehicle['year'],
                make=vehicle['make'],
                model=vehicle['model'],
                vin=vehicle['vin'],
                mileage=vehicle['mileage'],
                stock_number=vehicle['stockNumber'],
                gvwr=vehicle.get('gvwr')
            ),
            dealer=DealerInfo(
                name=dealer['name'],
                tax_rate=dealer['taxRate'],
                doc_fee=dealer['docFee'],
                license_fee=dealer['licenseFee']
            )
        )


# =============================================================================
# RULE SET CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class WhenClause:
    """
    Predicate over snapshot fields.

    Unset (None) fields never constrain the match.
    """
    deal_types: Optional[Tuple[DealType, ...]] = None
    has_trade_in: Optional[bool] = None
    is_out_of_state_buyer: Optional[bool] = None
    is_financed: Optional[bool] = None
    has_lienholder: Optional[bool] = None
    gvwr_min: Optional[float] = None
    gvwr_max: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'WhenClause':
        data = data or {}
        deal_types = data.get('dealType')
        return cls(
            deal_types=tuple(DealType(d) for d in deal_types) if deal_types is not None else None,
            has_trade_in=data.get('hasTradeIn'),
            is_out_of_state_buyer=data.get('isOutOfStateBuyer'),
            is_financed=data.get('isFinanced'),
            has_lienholder=data.get('hasLienholder'),
            gvwr_min=data.get('gvwrMin'),
            gvwr_max=data.get('gvwrMax')
        )


@dataclass(frozen=True)
class Scenario:
    when: WhenClause
    required_documents: Tuple[DocumentType, ...] = ()
    optional_documents: Tuple[DocumentType, ...] = ()
    notes: Optional[str] = None


@dataclass(frozen=True)
class ValidationRule:
    code: str
    message: str
    severity: str = 'error'
    field: Optional[str] = None
    when: WhenClause = dataclasses.field(default_factory=WhenClause)


@dataclass(frozen=True)
class RuleSetMetadata:
    title: Optional[str] = None
    notes: Optional[str] = None
    not_legal_advice: bool = False


@dataclass(frozen=True)
class RulesConfig:
    """
    The versioned body of one rule set (the `rules_json` column).

    Scenarios contribute documents, validations contribute issues, and
    computed fields are merged last-wins across rule sets.
    """
    scenarios: Tuple[Scenario, ...] = ()
    validations: Tuple[ValidationRule, ...] = ()
    computed_fields: Dict[str, ComputedValue] = field(default_factory=dict)
    metadata: RuleSetMetadata = field(default_factory=RuleSetMetadata)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RulesConfig':
        """Build from a dict that already passed the rule-set schema."""
        metadata_data = data.get('metadata') or {}
        metadata = RuleSetMetadata(
            title=metadata_data.get('title'),
            notes=metadata_data.get('notes'),
            not_legal_advice=bool(metadata_data.get('notLegalAdvice', False))
        )

        scenarios = []
        for scenario_data in data.get('scenarios', []):
            scenarios.append(Scenario(
                when=WhenClause.from_dict(scenario_data.get('when')),
                required_documents=tuple(
                    DocumentType(d) for d in scenario_data.get('requiredDocuments', [])
                ),
                optional_documents=tuple(
                    DocumentType(d) for d in scenario_data.get('optionalDocuments', [])
                ),
                notes=scenario_data.get('notes')
            ))

        validations = []
        for rule_data in data.get('validations', []):
            validations.append(ValidationRule(
                code=rule_data['code'],
                message=rule_data['message'],
                severity=rule_data.get('severity', 'error'),
                field=rule_data.get('field'),
                when=WhenClause.from_dict(rule_data.get('when'))
            ))

        return cls(
            scenarios=tuple(scenarios),
            validations=tuple(validations),
            computed_fields=dict(data.get('computedFields', {})),
            metadata=metadata
        )


# =============================================================================
# EVALUATION OUTPUT
# =============================================================================

@dataclass
class ChecklistItem:
    doc_type: DocumentType
    required: bool
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'docType': self.doc_type.value,
            'required': self.required,
            'reason': self.reason
        }


@dataclass
class ValidationIssue:
    """A validation rule that fired. Data, not an exception."""
    code: str
    message: str
    severity: str
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'code': self.code,
            'message': self.message,
            'severity': self.severity
        }
        if self.field is not None:
            result['field'] = self.field
        return result


@dataclass
class Evaluation:
    required_checklist: List[ChecklistItem]
    validation_errors: List[ValidationIssue]
    computed_fields: Dict[str, ComputedValue]
    notices: List[str]

    @property
    def has_blocking_errors(self) -> bool:
        return any(issue.severity == 'error' for issue in self.validation_errors)

    def required_doc_types(self) -> List[DocumentType]:
        return [item.doc_type for item in self.required_checklist if item.required]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requiredChecklist': [item.to_dict() for item in self.required_checklist],
            'validationErrors': [issue.to_dict() for issue in self.validation_errors],
            'computedFields': dict(self.computed_fields),
            'notices': list(self.notices)
        }
