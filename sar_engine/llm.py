import json
import logging
from pathlib import Path
import requests

from .config import OLLAMA_MODEL, OLLAMA_URL, USE_MOCK_LLM
from .evidence import build_narrative_dataset

logger = logging.getLogger(__name__)

PROMPT_PATH = Path(__file__).resolve().parent / "prompts" / "sar_prompt.txt"


def _load_prompt_template():
    return PROMPT_PATH.read_text(encoding="utf-8")


def _generate_mock_narrative(narrative_dataset, transactions):
    """Deterministic narrative assembled only from the assessment."""
    summary = narrative_dataset["summary"]
    findings = narrative_dataset["findings"]
    subject = narrative_dataset["customer_profile"]
    amounts = {t.transaction_id: t for t in transactions}

    lines = [
        "SUSPICIOUS ACTIVITY REPORT - DRAFT",
        "",
        "Subject Information",
        f"Customer {subject.get('customer_id')} ({subject.get('occupation')}) with declared annual income "
        f"{subject.get('annual_income')} and expected monthly volume {subject.get('expected_monthly_volume')}.",
        "",
        "Activity Summary",
        f"{summary['transaction_count']} transactions totalling {summary['total_amount']} "
        f"{summary['reporting_currency']} between {summary['period_start']} and {summary['period_end']} "
        f"across {summary['unique_counterparties']} counterparties.",
        "",
        "Indicators of Suspicion",
    ]
    if not findings:
        lines.append("No typology rules were triggered.")
    for f in findings:
        cited = ", ".join(
            f"{tid} ({amounts[tid].amount} {amounts[tid].currency})" if tid in amounts else tid
            for tid in f["transaction_ids"]
        )
        lines.append(f"- [{f['rule_id']}] {f['typology']}: {f['description']}. Evidence: {cited}.")
    lines += [
        "",
        "Assessment",
        f"Aggregated risk score {summary['risk_score']} classified as {summary['classification']} "
        f"under rule engine {narrative_dataset['rule_engine_version']}.",
    ]
    return "\n".join(lines)


def generate_sar_narrative(customer, transactions, assessment, force_mock=False):
    """Return ``(narrative_text, meta)``; falls back to the template on any LLM failure."""
    narrative_dataset = build_narrative_dataset(customer, assessment)

    if USE_MOCK_LLM or force_mock:
        return _generate_mock_narrative(narrative_dataset, transactions), {
            "prompt": "[MOCK MODE]",
            "model": "mock",
        }

    template = _load_prompt_template()
    prompt = template.format(narrative_dataset=json.dumps(narrative_dataset, ensure_ascii=False, indent=2))

    payload = {
        "model": OLLAMA_MODEL,
        "prompt": prompt,
        "stream": False,
        "options": {"temperature": 0.2, "num_predict": 1400},
    }

    try:
        resp = requests.post(OLLAMA_URL, json=payload, timeout=300)
        resp.raise_for_status()
        narrative = str(resp.json().get("response", "")).strip()
        if not narrative:
            raise ValueError("Empty narrative in LLM response")
        return narrative, {
            "prompt": prompt,
            "model": OLLAMA_MODEL,
        }
    except (requests.RequestException, ValueError) as e:
        logger.warning("narrative generation failed for case %s: %s", assessment.case_id, e)
        return _generate_mock_narrative(narrative_dataset, transactions), {
            "prompt": prompt,
            "model": f"{OLLAMA_MODEL}_fallback",
            "error": str(e),
        }
