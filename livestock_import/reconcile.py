"""Match each row's owner against the client registry, or create one.

Under the default ANY strategy every genuine value the row carries for
national id, phone, name and village is a match criterion, tried in that
order with one ``find_one`` each; the first hit wins. This maximizes reuse of
existing clients with inconsistent import data, while an exact identity
number always takes precedence over a shared phone, name or village. The
NATIONAL_ID strategy matches on the identity number only.

A matched client is updated additively: blank fields are filled from the row
and the current service tag is appended. An unmatched owner is created with
synthesized placeholders for missing mandatory fields. Placeholders never
take part in matching and are unique within one reconciler (one batch).
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from .coercers import normalize_phone, parse_date
from .config_loader import UNSPECIFIED
from .data_models import ClientEntity
from .enums import ClientStatus, MatchStrategy
from .exceptions import ReconciliationError
from .store import CLIENTS, DocumentStore, DuplicateKeyError
from .utils import identifier_text, is_blank, string_or_empty

LOG = logging.getLogger(__name__)

# Lookup priority under the ANY strategy.
MATCH_FIELDS = ("national_id", "phone", "name", "village")
FILLABLE_FIELDS = ("name", "national_id", "phone", "village", "detailed_address", "holding_code")
PLACEHOLDER_ATTEMPTS = 1000
DEFAULT_NAME_PREFIX = "مربي"


class ClientReconciler:
    """Find-or-create clients for one import batch.

    Parameters
    ----------
    store : DocumentStore
        Store holding the ``clients`` collection.
    match_strategy : MatchStrategy, default ANY
        Lookup criteria.
    sentinel : str
        Placeholder text for unknown village and address.
    country_code : str, default "966"
        Used to normalize phone numbers before matching and storing.
    clock : Callable[[], float], optional
        Seconds since the epoch; drives placeholder national ids.
    rng : random.Random, optional
        Source of the random placeholder digits.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        match_strategy: MatchStrategy = MatchStrategy.ANY,
        sentinel: str = UNSPECIFIED,
        country_code: str = "966",
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.match_strategy = match_strategy
        self.sentinel = sentinel
        self.country_code = country_code
        self._clock = clock or time.time
        self._rng = rng or random.Random()
        self._issued: Set[str] = set()

    def incoming_fields(
        self, fields: Mapping[str, Any], issues: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """Extract the genuine (non-blank) owner values of a resolved row.

        An unparseable birth date is reported to ``issues`` as
        ``birth_date: <message>``.
        """
        found: List[str] = []
        incoming = {
            "name": string_or_empty(fields.get("name")),
            "national_id": identifier_text(fields.get("national_id")),
            "phone": normalize_phone(fields.get("phone"), self.country_code),
            "village": string_or_empty(fields.get("village")),
            "detailed_address": string_or_empty(fields.get("detailed_address")),
            "holding_code": identifier_text(fields.get("holding_code")),
            "birth_date": parse_date(fields.get("birth_date"), None, issues=found),
        }
        if issues is not None:
            issues.extend(f"birth_date: {message}" for message in found)
        return {
            key: value
            for key, value in incoming.items()
            if value is not None and value != "" and value != self.sentinel
        }

    def find(self, incoming: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Look up an existing client document for the incoming values.

        Criteria are tried one at a time in ``MATCH_FIELDS`` order, so a
        client sharing the row's national id is preferred over one that only
        shares its phone, name or village.
        """
        keys = ("national_id",) if self.match_strategy is MatchStrategy.NATIONAL_ID else MATCH_FIELDS
        for key in keys:
            if key not in incoming:
                continue
            document = self.store.find_one(CLIENTS, {key: incoming[key]})
            if document is not None:
                LOG.debug("Matched client %s on %s", document["_id"], key)
                return document
        return None

    def find_or_create(
        self,
        fields: Mapping[str, Any],
        actor_id: Optional[str],
        service: str,
        issues: Optional[List[str]] = None,
    ) -> ClientEntity:
        """Return the client for a row, creating or updating it as needed.

        Parameters
        ----------
        fields : Mapping[str, Any]
            Canonical fields of the row (output of ``aliases.resolve``).
        actor_id : str, optional
            User recorded as creator of new clients.
        service : str
            Service tag to ensure on the client's ``available_services``.
        issues : list of str, optional
            Receives coercion issues of the owner fields.

        Returns
        -------
        ClientEntity
            The persisted client.

        Raises
        ------
        ReconciliationError
            If a placeholder cannot be made unique, or a duplicate national id
            is reported but the existing client cannot be read back.
        """
        incoming = self.incoming_fields(fields, issues)
        existing = self.find(incoming)
        if existing is not None:
            return self._merge(existing, incoming, service)
        return self._create(incoming, fields, actor_id, service)

    def _merge(self, document: Dict[str, Any], incoming: Mapping[str, Any], service: str) -> ClientEntity:
        patch: Dict[str, Any] = {}
        for key in FILLABLE_FIELDS:
            current = document.get(key)
            if key in incoming and (is_blank(current) or current == self.sentinel):
                patch[key] = incoming[key]
        if document.get("birth_date") in (None, "") and "birth_date" in incoming:
            patch["birth_date"] = incoming["birth_date"].isoformat()

        services = list(document.get("available_services") or [])
        if service and service not in services:
            patch["available_services"] = services + [service]

        if patch:
            self.store.update_one(CLIENTS, document["_id"], patch)
            LOG.debug("Updated client %s with %s", document["_id"], sorted(patch))
        return ClientEntity.from_document({**document, **patch})

    def _create(
        self,
        incoming: Mapping[str, Any],
        fields: Mapping[str, Any],
        actor_id: Optional[str],
        service: str,
    ) -> ClientEntity:
        village = incoming.get("village", self.sentinel)
        label = incoming.get("village") or identifier_text(fields.get("serial_no")) or self.sentinel
        client = ClientEntity(
            id="",
            name=incoming.get("name") or f"{DEFAULT_NAME_PREFIX} {label}",
            national_id=incoming.get("national_id") or self.placeholder_national_id(),
            phone=incoming.get("phone") or self.placeholder_phone(),
            village=village,
            detailed_address=incoming.get("detailed_address") or village,
            birth_date=incoming.get("birth_date"),
            status=ClientStatus.ACTIVE,
            available_services=(service,) if service else (),
            created_by=actor_id,
            holding_code=incoming.get("holding_code", ""),
        )
        try:
            client_id = self.store.insert_one(CLIENTS, client.to_document())
        except DuplicateKeyError as exc:
            if exc.key != "national_id":
                raise ReconciliationError(str(exc)) from exc
            LOG.info("Duplicate national id %s on insert; reusing existing client", client.national_id)
            existing = self.store.find_one(CLIENTS, {"national_id": client.national_id})
            if existing is None:
                raise ReconciliationError(
                    f"Client with national id {client.national_id} exists but could not be retrieved"
                ) from exc
            return self._merge(existing, incoming, service)

        LOG.info("Created client %s (%s)", client.name, client_id)
        return ClientEntity.from_document({**client.to_document(), "_id": client_id})

    def _unique(self, generate: Callable[[], str], field: str) -> str:
        for _ in range(PLACEHOLDER_ATTEMPTS):
            candidate = generate()
            if candidate in self._issued:
                continue
            if self.store.count(CLIENTS, {field: candidate}) == 0:
                self._issued.add(candidate)
                return candidate
        raise ReconciliationError(f"Could not generate a unique placeholder {field}")

    def placeholder_national_id(self) -> str:
        """10 digits: last 8 digits of the millisecond clock plus 2 random digits."""

        def generate() -> str:
            millis = int(self._clock() * 1000)
            return f"{millis % 10**8:08d}{self._rng.randrange(100):02d}"

        return self._unique(generate, "national_id")

    def placeholder_phone(self) -> str:
        """Local mobile shape ``5`` plus 8 random digits, normalized to international form."""

        def generate() -> str:
            return normalize_phone(f"5{self._rng.randrange(10**8):08d}", self.country_code)

        return self._unique(generate, "phone")
