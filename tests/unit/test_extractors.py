"""
Unit Tests for numeric claim extraction.

Tests the ordered extractor table and the strict scorecard JSON parser.
"""

from unittest.mock import patch

import pytest

from guarded_qa.core.errors import MalformedModelOutput
from guarded_qa.validation.extractors import extract_claims, parse_scorecard_json

SCORECARD_JSON = (
    '{"advisor": "Akeen Jackson", "period": "August 2025", "invoices": 120, '
    '"sales": 5385, "gpSales": 2450.5, "gpPercent": 45.5, "retailTires": 32, "allTires": 40}'
)


class TestExtractClaims:
    """Test cases for free-text extraction."""

    def test_amount_before_label(self) -> None:
        claims = extract_claims("Akeem Jackson had $23,450 in sales for August.")

        assert set(claims) == {"sales"}
        assert claims["sales"].value == 23450.0
        assert claims["sales"].text == "23,450"

    def test_label_before_amount(self) -> None:
        claims = extract_claims("Sales were $5,385.00 with 120 invoices and a 45.5% GP")

        assert claims["sales"].value == 5385.0
        assert claims["invoices"].value == 120
        assert claims["gpPercent"].value == 45.5
        assert "gpSales" not in claims

    def test_gross_profit_sales(self) -> None:
        claims = extract_claims("You brought in $2,450.50 in gross profit this month.")

        assert claims["gpSales"].value == 2450.5

    def test_gross_profit_label_first(self) -> None:
        claims = extract_claims("Your gross profit was $99,999 on $77,777 of sales this month.")

        assert claims["gpSales"].value == 99999.0
        assert claims["sales"].value == 77777.0

    @pytest.mark.parametrize(
        "text",
        [
            "Gross profit percentage was 45.5% this month.",
            "Your GP% is 45.5 this month.",
            "GP was 45.5% of sales.",
        ],
    )
    def test_gross_profit_rates_are_not_amounts(self, text: str) -> None:
        assert "gpSales" not in extract_claims(text)

    def test_service_counts(self) -> None:
        claims = extract_claims(
            "You completed 14 alignments, 60 oil changes, 9 brake services "
            "and sold 32 retail tires (40 total tires)."
        )

        assert claims["alignments"].value == 14
        assert claims["oilChange"].value == 60
        assert claims["brakeService"].value == 9
        assert claims["retailTires"].value == 32
        assert claims["allTires"].value == 40

    def test_bare_year_is_not_an_amount(self) -> None:
        claims = extract_claims("In 2025 sales were $5,385 so far.")

        assert claims["sales"].value == 5385.0

    def test_earliest_occurrence_wins(self) -> None:
        claims = extract_claims("Sales: $100. Last month you had $200 in sales.")

        assert claims["sales"].value == 100.0

    def test_tickets_per_pit_is_not_an_invoice_count(self) -> None:
        claims = extract_claims("Your TPP was 1.25 tickets per pit.")

        assert claims["tpp"].value == 1.25
        assert "invoices" not in claims

    def test_no_numbers(self) -> None:
        assert extract_claims("Keep up the great work this month!") == {}


class TestParseScorecardJson:
    """Test cases for strict JSON replies."""

    def test_plain_object(self) -> None:
        data, claims = parse_scorecard_json(SCORECARD_JSON)

        assert data["advisor"] == "Akeen Jackson"
        assert claims["sales"].value == 5385
        assert claims["gpPercent"].value == 45.5
        assert "advisor" not in claims

    def test_single_code_fence_tolerated_with_warning(self) -> None:
        with patch("guarded_qa.validation.extractors.logger") as logger:
            _, claims = parse_scorecard_json(f"```json\n{SCORECARD_JSON}\n```")

        assert claims["invoices"].value == 120
        logger.warning.assert_called_once()

    def test_bare_object_logs_nothing(self) -> None:
        with patch("guarded_qa.validation.extractors.logger") as logger:
            parse_scorecard_json(SCORECARD_JSON)

        logger.warning.assert_not_called()

    def test_null_values_skipped(self) -> None:
        _, claims = parse_scorecard_json('{"sales": 5385, "allTires": null}')

        assert set(claims) == {"sales"}

    def test_prose_around_json_rejected(self) -> None:
        with pytest.raises(MalformedModelOutput):
            parse_scorecard_json(f"Here is the scorecard: {SCORECARD_JSON}")

    def test_array_rejected(self) -> None:
        with pytest.raises(MalformedModelOutput, match="not an object"):
            parse_scorecard_json("[1, 2, 3]")

    def test_string_metric_rejected(self) -> None:
        with pytest.raises(MalformedModelOutput, match="sales"):
            parse_scorecard_json('{"sales": "$5,385"}')
