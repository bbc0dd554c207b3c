"""
json_decode.py
Pull a JSON object out of free model text.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

_decoder = json.JSONDecoder()


@dataclass
class DecodeResult:
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    def unwrap_or(self, fallback: Dict[str, Any]) -> Dict[str, Any]:
        return self.value if self.value is not None else fallback


def decode_json_object(text: Optional[str]) -> DecodeResult:
    '''
        Decode the first well-formed JSON object found in the text.
        Never raises, failures are reported in DecodeResult.error.
    '''
    if not text or not text.strip():
        return DecodeResult(error="Empty response")

    start = text.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return DecodeResult(value=value)
        start = text.find("{", start + 1)

    return DecodeResult(error="No JSON object found in response")
