"""
Duplicate invoice detection.

Weighted heuristic over every pair of processed invoices:
    same invoice number           +0.4
    same vendor (case-insensitive) +0.2
    amounts within 1% (relative)   +0.3
    invoice dates < 7 days apart   +0.1

Pairs scoring in [0.5, threshold) are escalated to the model, which may raise
the score to its own judgement when that reaches the threshold. A failed
escalation leaves the heuristic score untouched (the pair is not reported
unless it already qualified).

Quadratic in the number of invoices; per-user invoice sets are small.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from backend.agents.reasoning import TEMPERATURE_STRICT, ReasoningEngine
from backend.utils.formatting import format_date, parse_date
from backend.utils.json_parsing import extract_json_object

logger = logging.getLogger(__name__)

SAME_NUMBER_WEIGHT = 0.4
SAME_VENDOR_WEIGHT = 0.2
SAME_AMOUNT_WEIGHT = 0.3
CLOSE_DATE_WEIGHT = 0.1

AMOUNT_TOLERANCE = 0.01
DATE_WINDOW_DAYS = 7
ESCALATION_FLOOR = 0.5
DEFAULT_THRESHOLD = 0.85


@dataclass
class DuplicateMatch:
    first: Dict[str, Any]
    second: Dict[str, Any]
    similarity: float
    reasons: List[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons)


def score_invoice_pair(first: Dict[str, Any], second: Dict[str, Any]) -> Tuple[float, List[str]]:
    """Heuristic similarity of two invoice records and the reasons that contributed."""
    score = 0.0
    reasons: List[str] = []

    number_a, number_b = first.get("invoice_number"), second.get("invoice_number")
    if number_a and number_b and number_a == number_b:
        score += SAME_NUMBER_WEIGHT
        reasons.append("same invoice number")

    vendor_a, vendor_b = first.get("vendor_name"), second.get("vendor_name")
    if vendor_a and vendor_b and vendor_a.lower() == vendor_b.lower():
        score += SAME_VENDOR_WEIGHT
        reasons.append("same vendor")

    amount_a, amount_b = first.get("total_amount"), second.get("total_amount")
    if amount_a and amount_b:
        amount_a, amount_b = float(amount_a), float(amount_b)
        average = (amount_a + amount_b) / 2
        if average and abs(amount_a - amount_b) / abs(average) < AMOUNT_TOLERANCE:
            score += SAME_AMOUNT_WEIGHT
            reasons.append("same amount")

    date_a, date_b = parse_date(first.get("invoice_date")), parse_date(second.get("invoice_date"))
    if date_a and date_b and abs((date_a - date_b).days) < DATE_WINDOW_DAYS:
        score += CLOSE_DATE_WEIGHT
        reasons.append("similar date")

    # Weights are decimal fractions; keep the sum free of float noise
    return round(score, 2), reasons


def _describe(invoice: Dict[str, Any]) -> str:
    return (
        f"- Vendor: {invoice.get('vendor_name') or 'N/A'}\n"
        f"- Invoice Number: {invoice.get('invoice_number') or 'N/A'}\n"
        f"- Amount: {invoice.get('total_amount') or 'N/A'}\n"
        f"- Date: {format_date(invoice.get('invoice_date'))}"
    )


def build_comparison_prompt(first: Dict[str, Any], second: Dict[str, Any]) -> str:
    return f"""Compare these two invoices and determine if they are duplicates or very similar.

Invoice 1:
{_describe(first)}

Invoice 2:
{_describe(second)}

Return ONLY valid JSON: {{"similarity": 0.0-1.0, "reason": "brief explanation"}}"""


async def judge_similarity(
    engine: ReasoningEngine,
    first: Dict[str, Any],
    second: Dict[str, Any],
) -> Optional[Tuple[float, str]]:
    """Model-judged (similarity, reason), or None when the call or its output fails."""
    try:
        response_text = await engine.generate_text(
            build_comparison_prompt(first, second),
            temperature=TEMPERATURE_STRICT,
            json_output=True,
        )
        verdict = extract_json_object(response_text)
        similarity = float(verdict.get("similarity") or 0)
    except Exception as e:
        logger.warning(f"Duplicate escalation failed, keeping heuristic score: {e}")
        return None

    return similarity, str(verdict.get("reason") or "similar invoices")


async def find_duplicate_invoices(
    engine: ReasoningEngine,
    invoices: List[Dict[str, Any]],
    threshold: float = DEFAULT_THRESHOLD,
) -> List[DuplicateMatch]:
    """Every pair scoring at or above threshold, in pair order."""
    matches: List[DuplicateMatch] = []
    escalations = 0

    for i in range(len(invoices)):
        for j in range(i + 1, len(invoices)):
            first, second = invoices[i], invoices[j]
            similarity, reasons = score_invoice_pair(first, second)

            if ESCALATION_FLOOR <= similarity < threshold:
                escalations += 1
                verdict = await judge_similarity(engine, first, second)
                if verdict is not None and verdict[0] >= threshold:
                    similarity = verdict[0]
                    reasons.append(f"AI analysis: {verdict[1]}")

            if similarity >= threshold:
                matches.append(DuplicateMatch(first, second, similarity, reasons))

    logger.info(
        f"Duplicate scan: invoices={len(invoices)}, escalations={escalations}, matches={len(matches)}"
    )
    return matches
