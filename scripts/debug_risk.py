import datetime as dt
import json
import sys

from sar_engine.config import load_engine_config
from sar_engine.errors import SAREngineError
from sar_engine.evaluator import CaseEvaluator
from sar_engine.intake import case_from_upload


def main(path="data/transaction_data.json"):
    with open(path, encoding="utf-8") as fh:
        customers = json.load(fh)["customers"]

    evaluator = CaseEvaluator(load_engine_config())
    print(f"--- Risk scores ({evaluator.config.version}) ---")
    for customer in customers:
        try:
            case = case_from_upload(customer, "DEBUG", dt.datetime.now(dt.timezone.utc).replace(tzinfo=None))
            result = evaluator.evaluate(case)
        except SAREngineError as e:
            print(f"\nCustomer {customer.get('customer_id')}: skipped ({e})")
            continue
        print(f"\nCustomer: {customer.get('full_name')} ({customer.get('customer_id')})")
        print(f"Risk Score: {result.aggregated_risk_score} [{result.final_classification}]")
        for rule in result.triggered_rules:
            print(f"  {rule}")


if __name__ == "__main__":
    main(*sys.argv[1:2])
