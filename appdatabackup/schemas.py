# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Bus payload schemas for the backup participant.

Payloads travel over the bus as JSON text. Inbound payloads are validated
with pydantic; outbound payloads are serialized from frozen models so a
reply cannot change after it is built.
"""

from dataclasses import dataclass, field
from typing import Any, List, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

SCHEMA_ERROR_CODE = -1


class _BusPayload(BaseModel):
    """Common settings: camelCase on the wire, immutable once built."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class BackupManifest(_BusPayload):
    """preBackup reply: what the orchestrator should archive."""

    description: str
    version: str
    files: Tuple[str, ...] = ()


class RestoreRequest(_BusPayload):
    """
    postRestore request.

    Only the presence and array-ness of ``files`` is enforced. Element
    types are not checked and extra keys are tolerated.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    files: List[Any]


class RestoreAck(_BusPayload):
    """postRestore reply."""

    return_value: bool = True


class SchemaErrorReply(_BusPayload):
    """Standardized reply for a payload that does not match its schema."""

    return_value: bool = False
    error_code: int = SCHEMA_ERROR_CODE
    error_text: str


# ============================================================================
# Validation result
# ============================================================================

@dataclass(frozen=True)
class Valid:
    """Payload matched the schema."""

    request: RestoreRequest


@dataclass(frozen=True)
class SchemaError:
    """Payload did not match the schema."""

    error_text: str
    errors: List[dict] = field(default_factory=list)

    def to_reply(self) -> SchemaErrorReply:
        return SchemaErrorReply(error_text=self.error_text)


ValidationResult = Union[Valid, SchemaError]


def _describe(errors: List[dict]) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def validate_restore_request(payload: str | bytes | None) -> ValidationResult:
    """
    Validate a postRestore payload of the shape ``{"files": [...]}``.

    Args:
        payload: Raw JSON text from the bus message

    Returns:
        Valid with the parsed request, or SchemaError describing the problem
    """
    if payload is None:
        return SchemaError(error_text="Malformed json.")

    try:
        request = RestoreRequest.model_validate_json(payload)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_input=False)
        if any(err["type"] == "json_invalid" for err in errors):
            return SchemaError(error_text="Malformed json.", errors=errors)
        return SchemaError(
            error_text=f"Schema validation failed: {_describe(errors)}",
            errors=errors,
        )

    return Valid(request=request)
