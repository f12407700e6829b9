"""
Deterministic normalizer for model JSON outputs.
Handles common quirks (code fences, trailing prose, renamed keys)
without a second model call.
"""

import json
import re
from typing import Any, Dict, List, Union

from json_repair import repair_json

from chatlens.errors import ResponseParseError


# Keys that would carry raw message text; stripped from summaries
CONTENT_KEYS = ('message', 'content', 'text')


class ResponseNormalizer:
    """Turn free-form model replies into plain JSON values."""

    # Field name variations seen in deep-analysis replies
    FIELD_MAPPINGS = {
        'overview': 'relationshipOverview',
        'relationship_overview': 'relationshipOverview',
        'communication_patterns': 'communicationPatterns',
        'patterns': 'communicationPatterns',
        'emotional_dynamics': 'emotionalDynamics',
        'emotions': 'emotionalDynamics',
        'psychological_insights': 'psychologicalInsights',
        'psychology': 'psychologicalInsights',
        'relationship_health': 'relationshipHealth',
        'health': 'relationshipHealth',
        'practical_advice': 'practicalAdvice',
        'advice': 'practicalAdvice',
        'summary': 'conclusion',
    }

    @classmethod
    def extract_first_json(cls, text: str) -> Any:
        """
        Extract the first complete JSON object from text, ignoring anything after it.

        Handles the "Extra data" error when models add prose after the JSON.
        """
        depth = 0
        in_string = False
        escape_next = False
        start_idx = text.find('{')

        if start_idx == -1:
            raise ValueError("No JSON object found in text")

        for i in range(start_idx, len(text)):
            char = text[i]

            if escape_next:
                escape_next = False
                continue

            if char == '\\':
                escape_next = True
                continue

            if char == '"':
                in_string = not in_string
                continue

            if not in_string:
                if char == '{':
                    depth += 1
                elif char == '}':
                    depth -= 1
                    if depth == 0:
                        return json.loads(text[start_idx:i + 1])

        raise ValueError("Could not find complete JSON object")

    @staticmethod
    def strip_code_fences(text: str) -> str:
        text = text.strip()
        fenced = re.search(r'```(?:json)?\s*(.*?)\s*```', text, re.DOTALL)
        if fenced:
            return fenced.group(1).strip()
        return text

    @classmethod
    def parse(cls, raw_output: str, expected: type = dict) -> Any:
        """
        Parse a model reply into JSON.

        Strategies, in order: plain json.loads on the unfenced text,
        first balanced object, json-repair. Raises ResponseParseError
        when none yields a value of the expected type.
        """
        if raw_output is None or not str(raw_output).strip():
            raise ResponseParseError("Empty response", raw="")

        text = cls.strip_code_fences(str(raw_output))

        data = None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            try:
                data = cls.extract_first_json(text)
            except ValueError:
                try:
                    repaired = repair_json(text)
                    data = json.loads(repaired) if repaired else None
                except ValueError:
                    data = None

        if not isinstance(data, expected) or (expected is dict and not data):
            raise ResponseParseError(
                f"Expected JSON {expected.__name__}, got {type(data).__name__}",
                raw=str(raw_output)[:1000],
            )
        return data

    @classmethod
    def normalize_field_names(cls, data: Dict) -> Dict:
        """Map known top-level key variations onto canonical names."""
        normalized = {}
        for key, value in data.items():
            normalized_key = cls.FIELD_MAPPINGS.get(key, cls.FIELD_MAPPINGS.get(key.lower(), key))
            # Canonical keys win over aliases
            if normalized_key in normalized and normalized_key == key:
                normalized[normalized_key] = value
            elif normalized_key not in normalized:
                normalized[normalized_key] = value
        return normalized


def sanitize_content(value: Any) -> Any:
    """Recursively drop keys that could carry raw message text."""
    if isinstance(value, dict):
        return {
            k: sanitize_content(v)
            for k, v in value.items()
            if k not in CONTENT_KEYS
        }
    if isinstance(value, list):
        return [sanitize_content(v) for v in value]
    return value


def coerce_str_list(value: Any) -> List[str]:
    """Coerce a model-provided list (or single value) into a list of strings."""
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        return [str(value)]
    if isinstance(value, list):
        out = []
        for item in value:
            if isinstance(item, dict):
                item = item.get('title') or item.get('description') or json.dumps(item, ensure_ascii=False)
            out.append(str(item))
        return out
    return []


def coerce_str(value: Union[str, Any]) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return json.dumps(value, ensure_ascii=False)
