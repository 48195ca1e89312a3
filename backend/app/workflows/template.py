# /app/workflows/template.py

import re
from typing import Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def interpolate(template: str, answers: Mapping[str, str]) -> str:
    """
    Replace every {{name}} in the template with answers[name].

    Unknown names render as an empty string. Substituted values are not
    scanned again, so an answer containing "{{x}}" is emitted verbatim.
    """
    if not template:
        return ""
    return PLACEHOLDER_PATTERN.sub(lambda match: str(answers.get(match.group(1)) or ""), template)
