"""JSON Schema validation for MarketIR entities.

The schema document is an opaque contract: one file with a ``$id`` and a
``$defs`` entry per entity kind. Each kind is validated by compiling a
``{"$ref": "<$id>#/$defs/<kind>"}`` wrapper against a registry that holds
the document, so intra-schema ``$ref``s resolve the same way they do for
any other Draft 2020-12 consumer.

Validation errors are converted into ``Violation`` values; nothing here
raises for bad entity data.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT202012

from tools.marketir.errors import Violation, schema_violation

logger = logging.getLogger(__name__)

SCHEMA_KINDS = ("index", "audience", "tool", "campaign", "evidence")

# Used when the schema document does not carry its own $id.
DEFAULT_SCHEMA_ID = "https://schemas.marketir.invalid/marketing.schema.json"


class SchemaValidator:
    """Validates single entities against their declared schema kind."""

    def __init__(self, schema: Mapping[str, Any], location: str = ""):
        self.location = location
        self.schema = schema
        schema_id = schema.get("$id") if isinstance(schema, Mapping) else None
        self.schema_id = schema_id if isinstance(schema_id, str) and schema_id else DEFAULT_SCHEMA_ID
        defs = schema.get("$defs") if isinstance(schema, Mapping) else None
        self._defs = set(defs) if isinstance(defs, Mapping) else set()
        resource = Resource.from_contents(dict(schema), default_specification=DRAFT202012)
        self._registry = Registry().with_resource(self.schema_id, resource)
        self._validators: Dict[str, Draft202012Validator] = {}
        self._unresolvable: Set[str] = set()

    @classmethod
    def from_document(cls, schema: Any, location: str) -> Tuple[Optional["SchemaValidator"], List[Violation]]:
        """Build a validator, reporting problems with the schema document itself.

        Returns ``(None, violations)`` when the document cannot be used at all.
        """
        if not isinstance(schema, dict):
            return None, [schema_violation(location, "schema document must be a JSON object")]
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as ex:
            return None, [schema_violation(location, f"invalid schema document: {ex.message}")]
        validator = cls(schema, location)
        out = [
            schema_violation(location, f"schema has no $defs entry for {kind!r}", "$.$defs")
            for kind in SCHEMA_KINDS
            if kind not in validator._defs
        ]
        return validator, out

    def validator_for(self, kind: str) -> Optional[Draft202012Validator]:
        if kind not in self._defs:
            return None
        v = self._validators.get(kind)
        if v is None:
            v = Draft202012Validator(
                {"$ref": f"{self.schema_id}#/$defs/{kind}"},
                registry=self._registry,
                format_checker=Draft202012Validator.FORMAT_CHECKER,
            )
            self._validators[kind] = v
        return v

    def validate(self, entity: Any, kind: str, location: str = "", base_path: str = "$") -> List[Violation]:
        """Return every schema violation of ``entity`` as ``kind``.

        ``base_path`` prefixes reported paths for entities nested inside a
        larger document (evidence entries inside the manifest).

        A ``$ref`` the schema document cannot resolve is reported once,
        against the schema itself; the kind is not checked after that.
        """
        v = self.validator_for(kind)
        if v is None or kind in self._unresolvable:
            return []
        try:
            errors = sorted(v.iter_errors(entity), key=lambda e: (e.json_path, e.message))
        except Unresolvable as ex:
            self._unresolvable.add(kind)
            logger.error("schema %s: unresolvable $ref under %s: %s", self.location, kind, ex)
            return [schema_violation(
                self.location,
                f"schema for {kind!r} has an unresolvable $ref: {ex}",
                f"$.$defs.{kind}",
            )]
        out: List[Violation] = []
        for error in errors:
            path = base_path + error.json_path[1:]
            out.append(schema_violation(location, error.message, path))
        if out:
            logger.debug("%s: %d schema violation(s) as %s", location, len(out), kind)
        return out
