"""
JSON schemas for examination test results.

Each assay kind reports a few test outcomes coded as -1 (indeterminate),
0 (negative) or 1 (positive). A result must carry at least one of the
assay's screening tests; an empty result is meaningless.
"""

from app.config import ResultLimits

TEST_OUTCOMES = (-1, 0, 1)

# Outcomes are JSON integers; numeric strings such as "1" are rejected.
TEST_OUTCOME_SCHEMA: dict = {
    "type": "integer",
    "enum": list(TEST_OUTCOMES),
    "description": "-1 indeterminate, 0 negative, 1 positive.",
}


def _require_any(*fields: str) -> list[dict]:
    return [{"required": [name]} for name in fields]


def hiv_result_schema(limits: ResultLimits) -> dict:
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "title": "HIV test result",
        "type": "object",
        "properties": {
            "antihiv": {**TEST_OUTCOME_SCHEMA, "description": "Anti-HIV 1/2 antibodies."},
            "hiv1p24ag": {**TEST_OUTCOME_SCHEMA, "description": "HIV-1 p24 antigen."},
            "elisa": {
                "type": "string",
                "pattern": "\\S",
                "maxLength": limits.text_max_length,
                "description": "ELISA kit used for the screening.",
            },
        },
        "anyOf": _require_any("antihiv", "hiv1p24ag"),
        "additionalProperties": False,
    }


def hcv_result_schema(limits: ResultLimits) -> dict:
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "title": "HCV test result",
        "type": "object",
        "properties": {
            "antihcv": TEST_OUTCOME_SCHEMA,
            "antihcvigg": TEST_OUTCOME_SCHEMA,
            "antihcvigm": TEST_OUTCOME_SCHEMA,
            "rnahcv": {**TEST_OUTCOME_SCHEMA, "description": "HCV RNA (PCR)."},
        },
        "anyOf": _require_any("antihcv", "rnahcv"),
        "additionalProperties": False,
    }
