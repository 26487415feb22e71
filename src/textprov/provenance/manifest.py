"""Provenance data model: actions, assertions, claims and manifests.

The wire shape follows the C2PA external-manifest layout:

    {
      "@context": "https://c2pa.org/specifications/manifest/v2.0",
      "claim": {"dc:format", "instanceId", "claimGenerator",
                "claimGeneratorInfo", "assertions": [...], "signature": {...}},
      "scitt": {"receipt", "serviceUrl", "logId", "timestamp", "entryId"}
    }

All model objects are immutable. A manifest is created once per accepted
edit and superseded by the next one, never edited in place.

Keys the model does not name are kept in each object's ``extra`` and written
back unchanged, so a manifest from another producer still verifies after a
load and save.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from textprov.canonical import HASH_ALGORITHM
from textprov.provenance.schema import ManifestStructureError, ensure_valid_manifest

MANIFEST_CONTEXT = "https://c2pa.org/specifications/manifest/v2.0"

HASH_ASSERTION_LABEL = "c2pa.hash.data"
ACTIONS_ASSERTION_LABEL = "c2pa.actions"


def _unknown_keys(data: dict[str, Any], known: frozenset[str]) -> dict[str, Any]:
    """Keys another producer wrote that this model does not name; kept verbatim."""
    return {k: copy.deepcopy(v) for k, v in data.items() if k not in known}


class ActionType(str, Enum):
    """Recorded edit event types."""

    CREATED = "c2pa.created"
    EDITED = "c2pa.edited"
    OPENED = "c2pa.opened"


class DigitalSourceType(str, Enum):
    """IPTC digital source type vocabulary (human vs. machine-assisted)."""

    HUMAN_EDITS = "http://cv.iptc.org/newscodes/digitalsourcetype/humanEdits"
    TRAINED_ALGORITHMIC_MEDIA = "http://cv.iptc.org/newscodes/digitalsourcetype/trainedAlgorithmicMedia"


def _enum_value(value: Any, enum_cls: type[Enum], field_name: str) -> str:
    if isinstance(value, enum_cls):
        return value.value
    valid = {member.value for member in enum_cls}
    if value not in valid:
        raise ValueError(f"Invalid {field_name}: {value!r} (expected one of {sorted(valid)})")
    return value


@dataclass(frozen=True)
class ChangeRange:
    """Character range touched by an edit (start inclusive, end exclusive)."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if isinstance(self.start, bool) or isinstance(self.end, bool):
            raise ValueError("Change range bounds must be integers")
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid change range: start={self.start}, end={self.end}")

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeRange:
        return cls(start=data["start"], end=data["end"])


@dataclass(frozen=True)
class ActionParameters:
    """Optional details attached to an action."""

    description: str | None = None
    ai_model: str | None = None
    prompt_hash: str | None = None
    response_hash: str | None = None
    before_hash: str | None = None
    after_hash: str | None = None
    change_range: ChangeRange | None = None

    _KEYS = (
        ("description", "description"),
        ("ai_model", "aiModel"),
        ("prompt_hash", "promptHash"),
        ("response_hash", "responseHash"),
        ("before_hash", "beforeHash"),
        ("after_hash", "afterHash"),
    )

    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting unset fields."""
        result: dict[str, Any] = {}
        for attr, key in self._KEYS:
            value = getattr(self, attr)
            if value is not None:
                result[key] = value
        if self.change_range is not None:
            result["changeRange"] = self.change_range.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionParameters:
        kwargs = {attr: data.get(key) for attr, key in cls._KEYS}
        change_range = data.get("changeRange")
        return cls(
            change_range=ChangeRange.from_dict(change_range) if change_range else None,
            **kwargs,
        )


@dataclass(frozen=True)
class Action:
    """One recorded edit event."""

    action: str
    when: str
    software_agent: str | None = None
    digital_source_type: str | None = None
    parameters: ActionParameters | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", _enum_value(self.action, ActionType, "action type"))
        if self.digital_source_type is not None:
            object.__setattr__(
                self,
                "digital_source_type",
                _enum_value(self.digital_source_type, DigitalSourceType, "digital source type"),
            )

    @property
    def is_ai_assisted(self) -> bool:
        return self.digital_source_type == DigitalSourceType.TRAINED_ALGORITHMIC_MEDIA.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"action": self.action, "when": self.when}
        if self.software_agent is not None:
            result["softwareAgent"] = self.software_agent
        if self.digital_source_type is not None:
            result["digitalSourceType"] = self.digital_source_type
        if self.parameters is not None and not self.parameters.is_empty():
            result["parameters"] = self.parameters.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        """Create from dictionary.

        Raises:
            ManifestStructureError: If required fields are missing or invalid
        """
        try:
            params = data.get("parameters")
            return cls(
                action=data["action"],
                when=data["when"],
                software_agent=data.get("softwareAgent"),
                digital_source_type=data.get("digitalSourceType"),
                parameters=ActionParameters.from_dict(params) if params else None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ManifestStructureError(f"Invalid action: {e}") from e


@dataclass(frozen=True)
class Assertion:
    """A labeled fact attached to a claim. ``data`` is label-specific."""

    label: str
    data: Any
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = frozenset({"label", "data"})

    def to_dict(self) -> dict[str, Any]:
        result = copy.deepcopy(self.extra)
        result.update({"label": self.label, "data": copy.deepcopy(self.data)})
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Assertion:
        return cls(
            label=data["label"],
            data=copy.deepcopy(data["data"]),
            extra=_unknown_keys(data, cls.KNOWN_KEYS),
        )


def hash_assertion(content_hash: str, algorithm: str = HASH_ALGORITHM) -> Assertion:
    """Hard-binding assertion tying a claim to exact content bytes."""
    return Assertion(label=HASH_ASSERTION_LABEL, data={"name": algorithm, "hash": content_hash})


def actions_assertion(actions: list[Action] | tuple[Action, ...]) -> Assertion:
    """Assertion carrying the ordered list of recorded actions."""
    return Assertion(label=ACTIONS_ASSERTION_LABEL, data={"actions": [a.to_dict() for a in actions]})


@dataclass(frozen=True)
class CoseSignature:
    """COSE-style signature over a claim.

    ``signature`` is ``Sign(key, protected + "." + payload)``.
    """

    protected: str
    payload: str
    signature: str
    public_key: str
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = frozenset({"protected", "payload", "signature", "publicKey"})

    @property
    def signing_input(self) -> str:
        return f"{self.protected}.{self.payload}"

    def to_dict(self) -> dict[str, Any]:
        result = copy.deepcopy(self.extra)
        result.update({
            "protected": self.protected,
            "payload": self.payload,
            "signature": self.signature,
            "publicKey": self.public_key,
        })
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CoseSignature:
        return cls(
            protected=data["protected"],
            payload=data["payload"],
            signature=data["signature"],
            public_key=data["publicKey"],
            extra=_unknown_keys(data, cls.KNOWN_KEYS),
        )


@dataclass(frozen=True)
class ScittReceipt:
    """Transparency-log receipt binding a manifest to a log entry."""

    receipt: str
    service_url: str
    log_id: str
    timestamp: str
    entry_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = frozenset({"receipt", "serviceUrl", "logId", "timestamp", "entryId"})

    def to_dict(self) -> dict[str, Any]:
        result = copy.deepcopy(self.extra)
        result.update({
            "receipt": self.receipt,
            "serviceUrl": self.service_url,
            "logId": self.log_id,
            "timestamp": self.timestamp,
        })
        if self.entry_id is not None:
            result["entryId"] = self.entry_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScittReceipt:
        return cls(
            receipt=data["receipt"],
            service_url=data["serviceUrl"],
            log_id=data["logId"],
            timestamp=data["timestamp"],
            entry_id=data.get("entryId"),
            extra=_unknown_keys(data, cls.KNOWN_KEYS),
        )


@dataclass(frozen=True)
class Claim:
    """The core provenance statement."""

    format: str
    instance_id: str
    claim_generator: str
    assertions: tuple[Assertion, ...] = ()
    claim_generator_info: dict[str, str] | None = None
    title: str | None = None
    signature: CoseSignature | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = frozenset({
        "dc:title", "dc:format", "instanceId", "claimGenerator",
        "claimGeneratorInfo", "assertions", "signature",
    })

    def __post_init__(self) -> None:
        object.__setattr__(self, "assertions", tuple(self.assertions))

    def find_assertion(self, label: str) -> Assertion | None:
        """Return the first assertion with the given label."""
        for assertion in self.assertions:
            if assertion.label == label:
                return assertion
        return None

    @property
    def content_hash(self) -> str | None:
        assertion = self.find_assertion(HASH_ASSERTION_LABEL)
        if assertion is None or not isinstance(assertion.data, dict):
            return None
        return assertion.data.get("hash")

    @property
    def actions(self) -> list[Action]:
        assertion = self.find_assertion(ACTIONS_ASSERTION_LABEL)
        if assertion is None or not isinstance(assertion.data, dict):
            return []
        return [Action.from_dict(a) for a in assertion.data.get("actions", [])]

    def unsigned(self) -> Claim:
        """Copy of this claim without its signature."""
        return replace(self, signature=None)

    def to_dict(self, include_signature: bool = True) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = copy.deepcopy(self.extra)
        if self.title is not None:
            result["dc:title"] = self.title
        result["dc:format"] = self.format
        result["instanceId"] = self.instance_id
        result["claimGenerator"] = self.claim_generator
        if self.claim_generator_info is not None:
            result["claimGeneratorInfo"] = dict(self.claim_generator_info)
        result["assertions"] = [a.to_dict() for a in self.assertions]
        if include_signature and self.signature is not None:
            result["signature"] = self.signature.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Claim:
        signature = data.get("signature")
        info = data.get("claimGeneratorInfo")
        return cls(
            format=data["dc:format"],
            instance_id=data["instanceId"],
            claim_generator=data["claimGenerator"],
            assertions=tuple(Assertion.from_dict(a) for a in data.get("assertions", [])),
            claim_generator_info=dict(info) if info is not None else None,
            title=data.get("dc:title"),
            signature=CoseSignature.from_dict(signature) if signature else None,
            extra=_unknown_keys(data, cls.KNOWN_KEYS),
        )


@dataclass(frozen=True)
class ExternalManifest:
    """Signed claim plus envelope metadata and an optional receipt."""

    claim: Claim
    context: str = MANIFEST_CONTEXT
    scitt: ScittReceipt | None = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = frozenset({"@context", "claim", "scitt"})

    def with_receipt(self, receipt: ScittReceipt) -> ExternalManifest:
        """Return a new manifest carrying the given receipt."""
        return replace(self, scitt=receipt)

    def without_receipt(self) -> ExternalManifest:
        return replace(self, scitt=None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = copy.deepcopy(self.extra)
        result["@context"] = self.context
        result["claim"] = self.claim.to_dict()
        if self.scitt is not None:
            result["scitt"] = self.scitt.to_dict()
        return result

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize to deterministic (sorted-key) JSON text."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True, ensure_ascii=False)

    def write_json(self, path: Path) -> None:
        """Write manifest to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_json())

    @classmethod
    def from_dict(cls, data: Any) -> ExternalManifest:
        """Create from dictionary.

        Raises:
            ManifestStructureError: If data does not match the manifest shape
        """
        ensure_valid_manifest(data)
        try:
            scitt = data.get("scitt")
            return cls(
                claim=Claim.from_dict(data["claim"]),
                context=data["@context"],
                scitt=ScittReceipt.from_dict(scitt) if scitt else None,
                extra=_unknown_keys(data, cls.KNOWN_KEYS),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestStructureError(f"Invalid manifest structure: {e}") from e

    @classmethod
    def from_json(cls, text: str) -> ExternalManifest:
        """Parse manifest JSON text.

        Raises:
            ManifestStructureError: If text is not JSON or not a manifest
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestStructureError(f"Invalid manifest JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path) -> ExternalManifest:
        """Load manifest from JSON file."""
        with open(path, encoding="utf-8") as f:
            return cls.from_json(f.read())
