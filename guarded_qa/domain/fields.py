"""
Scorecard field registry.

Single source of truth for which field names may carry performance data:
- Approved fields with value type and comparison tolerance
- Forbidden names (raw uploads, ad hoc calculations, vendor mappings, fixtures)
- Required fields per entity kind
- Advanced/calculated fields that pass through untouched
"""

import re
from dataclasses import dataclass

from guarded_qa.domain.models import EntityKind, FieldType


@dataclass(frozen=True)
class FieldSpec:
    """An approved scorecard field."""
    name: str
    type: FieldType
    description: str = ""
    tolerance: float | None = None
    canonical: str | None = None


def _spec(name, type_, description="", tolerance=None, canonical=None) -> FieldSpec:
    return FieldSpec(name, type_, description, tolerance, canonical)


_FIELD_SPECS = [
    # Advisor metrics
    _spec("sales", FieldType.CURRENCY, "Total sales", 0.01),
    _spec("gpSales", FieldType.CURRENCY, "Gross profit sales", 0.01),
    _spec("gpPercent", FieldType.PERCENTAGE, "Gross profit percentage", 0.1),
    _spec("invoices", FieldType.INTEGER, "Invoice (ticket) count", 0),
    _spec("alignments", FieldType.INTEGER, "Alignment services", 0),
    _spec("oilChange", FieldType.INTEGER, "Oil change services", 0),
    _spec("retailTires", FieldType.INTEGER, "Retail tire units", 0),
    _spec("allTires", FieldType.INTEGER, "All tire units", 0),
    _spec("brakeService", FieldType.INTEGER, "Brake services", 0),
    _spec("tpp", FieldType.DECIMAL, "Tickets per pit", 0.01),
    _spec("pat", FieldType.DECIMAL, "Parts attach rate", 0.01),
    # Store / market aggregates, compared under the advisor metric names
    _spec("totalSales", FieldType.CURRENCY, "Aggregate sales", 0.01, "sales"),
    _spec("totalGpSales", FieldType.CURRENCY, "Aggregate gross profit sales", 0.01, "gpSales"),
    _spec("totalInvoices", FieldType.INTEGER, "Aggregate invoice count", 0, "invoices"),
    _spec("advisorCount", FieldType.INTEGER, "Active advisors", 0),
    _spec("storeCount", FieldType.INTEGER, "Stores in market", 0),
    # Calculated
    _spec("fluidAttachRates", FieldType.OBJECT, "Fluid attach rates by service"),
    _spec("fluid_attach_rates", FieldType.OBJECT, "Fluid attach rates by service"),
    _spec("attachRates", FieldType.OBJECT, "Attach rates"),
    _spec("efficiencyMetrics", FieldType.OBJECT, "Efficiency metrics"),
    # Descriptive metadata
    _spec("period", FieldType.STRING, "Reporting period"),
    _spec("advisor", FieldType.STRING, "Advisor display name"),
    _spec("advisorName", FieldType.STRING),
    _spec("advisor_name", FieldType.STRING),
    _spec("storeName", FieldType.STRING),
    _spec("store_name", FieldType.STRING),
    _spec("marketName", FieldType.STRING),
    _spec("market_name", FieldType.STRING),
    _spec("retrieved_at", FieldType.TIMESTAMP),
    _spec("updated_at", FieldType.TIMESTAMP),
    _spec("upload_date", FieldType.TIMESTAMP),
]

APPROVED_FIELDS: dict[str, FieldSpec] = {spec.name: spec for spec in _FIELD_SPECS}

# Metrics whose values are compared against generated text.
NUMERIC_FIELDS: dict[str, FieldSpec] = {
    name: spec for name, spec in APPROVED_FIELDS.items()
    if spec.type.is_numeric and spec.tolerance is not None
}

FORBIDDEN_FIELDS: frozenset[str] = frozenset({
    "avgSpend", "average_spend", "ticketAverage", "ticket_average",
    "mtdSales", "mtd_sales", "monthToDate", "month_to_date",
    "rawData", "raw_data", "spreadsheetData", "spreadsheet_data",
    "uploadedData", "uploaded_data", "performanceData", "performance_data",
    "calculatedTPP", "calculated_tpp", "inferredPAT", "inferred_pat",
    "estimatedAttachRate", "estimated_attach_rate",
    "approximateFluidAttach", "approximate_fluid_attach",
    "vendorMapping", "vendor_mapping", "productMapping", "product_mapping",
    "testData", "test_data", "mockData", "mock_data", "fixtureData", "fixture_data",
})

REQUIRED_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.ADVISOR: (
        "sales", "gpSales", "gpPercent", "invoices",
        "alignments", "oilChange", "retailTires", "brakeService",
    ),
    EntityKind.STORE: ("totalSales", "totalGpSales", "totalInvoices", "advisorCount"),
    EntityKind.MARKET: (
        "totalSales", "totalGpSales", "totalInvoices", "storeCount", "advisorCount",
    ),
}

ADVANCED_FIELDS: frozenset[str] = frozenset({
    "tpp", "pat", "fluidAttachRates", "fluid_attach_rates", "attachRates", "efficiencyMetrics",
})

# Substrings that make an unknown field name look like it carries performance data.
PERFORMANCE_FIELD_KEYWORDS = (
    "sales", "revenue", "profit", "gp", "invoice", "ticket", "tire", "oil",
    "brake", "alignment", "service", "attach", "tpp", "pat", "fluid",
    "performance", "metric",
)


def normalize_field_name(name: str) -> str:
    """Fold camelCase and snake_case spellings to one comparable form."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


_APPROVED_NORMALIZED = {normalize_field_name(n) for n in APPROVED_FIELDS}
_FORBIDDEN_NORMALIZED = {normalize_field_name(n) for n in FORBIDDEN_FIELDS}


def is_approved(name: str) -> bool:
    return normalize_field_name(name) in _APPROVED_NORMALIZED


def is_forbidden(name: str) -> bool:
    return normalize_field_name(name) in _FORBIDDEN_NORMALIZED


def suggests_performance_data(name: str) -> bool:
    normalized = normalize_field_name(name)
    return any(keyword in normalized for keyword in PERFORMANCE_FIELD_KEYWORDS)
