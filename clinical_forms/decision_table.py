"""Tabular views of a resolution for previews and debugging."""

from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd

from clinical_forms.form_model import FormModel
from clinical_forms.question_types import question_type_name
from clinical_forms.resolver import Resolution

DECISION_COLUMNS = (
    "Section",
    "Question",
    "Code",
    "Type",
    "Instance",
    "Visible",
    "Enabled",
    "Required",
)
DIAGNOSTIC_COLUMNS = ("Code", "Question", "Rule", "Message")


def decision_rows(form: FormModel, resolution: Resolution) -> List[Dict[str, Any]]:
    """Return one row per resolved question instance in flattened order."""

    rows: List[Dict[str, Any]] = []
    for section in form.sorted_sections():
        for question in section.sorted_questions():
            instances = sorted(
                repeat_index
                for (question_id, repeat_index) in resolution.instances
                if question_id == question.id
            )
            for repeat_index in instances or [None]:
                state = resolution.state_for(question.id, repeat_index)
                rows.append(
                    {
                        "Section": section.name,
                        "Question": question.label,
                        "Code": question.code,
                        "Type": question_type_name(question.type_id),
                        "Instance": "" if repeat_index is None else repeat_index + 1,
                        "Visible": state.visible,
                        "Enabled": state.enabled,
                        "Required": state.required,
                    }
                )
    return rows


def decision_frame(form: FormModel, resolution: Resolution) -> pd.DataFrame:
    return pd.DataFrame(decision_rows(form, resolution), columns=list(DECISION_COLUMNS))


def diagnostics_frame(resolution: Resolution) -> pd.DataFrame:
    """Return the resolution's diagnostics, one row each."""

    records = [
        {
            "Code": diagnostic.code,
            "Question": diagnostic.question_id or "",
            "Rule": diagnostic.rule_id or "",
            "Message": diagnostic.message,
        }
        for diagnostic in resolution.diagnostics
    ]
    return pd.DataFrame(records, columns=list(DIAGNOSTIC_COLUMNS))


__all__ = ["DECISION_COLUMNS", "DIAGNOSTIC_COLUMNS", "decision_frame", "decision_rows", "diagnostics_frame"]
