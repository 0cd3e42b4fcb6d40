"""Booking ledger for the Annisse Kattepension website."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .capacity import FIXED_DAILY_CAPACITY, capacity_for_range, occupancy
from .records import (
    STAY_STATUSES,
    BookingSource,
    BookingStatus,
    ValidationError,
    coerce_count,
    coerce_flag,
    new_id,
    parse_date,
    utc_now,
)
from .storage import (
    BOOKING_KEY,
    CAGE_KEY,
    PROFILE_KEY,
    STAY_KEY,
    KeyValueStore,
    load_array,
    load_object,
    save_array,
    save_object,
)

logger = logging.getLogger(__name__)

KENNEL_ID = "annisse-001"

DEFAULT_PROFILE: dict[str, Any] = {
    "id": KENNEL_ID,
    "name": "Annisse Kattepension",
    "tagline": "Luksuriøs, familiedrevet kattepension",
    "nightly_rate": 325,
    "address_line1": "Kattegangen 12",
    "postal_code": "3200",
    "city": "Annisse",
    "phone": "12 34 56 78",
    "email": "kontakt@annisse-kattepension.dk",
    "website": "https://annisse-kattepension.dk",
    "short_description": (
        "Hos Annisse Kattepension får hver kat sit eget rummelige bur med adgang til både "
        "inde- og udeområde. Vi lægger vægt på ro, nærvær og gennemsigtighed for både kat og ejer."
    ),
    "selling_points": (
        "Familiedrevet og nærværende hverdag\n"
        "Eget bur til hver kat, ingen tvangssammensætning\n"
        "Inde- og udeområde efter kattens temperament\n"
        "Mulighed for opdateringer med billeder/video\n"
        "Roligt miljø med fokus på trivsel"
    ),
    "practical_info": (
        "Katten skal være vaccineret efter gældende anbefalinger.\n"
        "Medbring gerne eget foder, hvis katten er kræsen eller på specialkost.\n"
        "Medicin gives efter aftale og noteres i bookingformularen.\n"
        "Ind- og udtjek sker som udgangspunkt efter aftale for at sikre ro i huset."
    ),
    "conditions_text": (
        "Her kan du skrive dine egne betingelser for ophold i Annisse Kattepension. "
        "For eksempel betalingsbetingelser, afbestillingsregler, krav til vaccination, "
        "medicin, forsinket afhentning og andet praktisk.\n\n"
        "Den tekst du skriver her, vises direkte på siden \"Betingelser\" på hjemmesiden."
    ),
}

# Fields the ledger owns on creation; caller data cannot override them.
_GENERATED_FIELDS = ("id", "kennel_id", "created_at")


def _find_index(records: list[dict], record_id: str) -> int:
    for idx, record in enumerate(records):
        if record.get("id") == record_id:
            return idx
    return -1


class BookingLedger:
    """Bookings, stays, cages and the kennel profile over a key-value store.

    ``store`` may be ``None`` when no storage is available; reads then return
    empty collections or defaults and writes are dropped.
    """

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load(self, key: str) -> list[dict]:
        return load_array(self.store, key)

    def _save(self, key: str, records: list[dict]) -> bool:
        return save_array(self.store, key, records)

    def _merge(self, key: str, record: Mapping[str, Any]) -> dict:
        if not record.get("id"):
            raise ValidationError("Record id is required")
        records = self._load(key)
        idx = _find_index(records, record["id"])
        if idx >= 0:
            merged = {**records[idx], **record}
            records[idx] = merged
        else:
            merged = dict(record)
            records.append(merged)
        self._save(key, records)
        return merged

    def _patch(self, key: str, record_id: str, changes: Mapping[str, Any]) -> dict | None:
        records = self._load(key)
        idx = _find_index(records, record_id)
        if idx == -1:
            return None
        records[idx] = {**records[idx], **changes}
        if not self._save(key, records):
            return None
        return records[idx]

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    def list_bookings_for_kennel(self, kennel_id: str | None) -> list[dict]:
        """Return the kennel's bookings; an empty kennel id returns all of them."""

        return [
            {**booking, "status": booking.get("status") or BookingStatus.PENDING.value}
            for booking in self._load(BOOKING_KEY)
            if not kennel_id or booking.get("kennel_id") == kennel_id
        ]

    def get_booking(self, booking_id: str) -> dict | None:
        records = self._load(BOOKING_KEY)
        idx = _find_index(records, booking_id)
        return records[idx] if idx >= 0 else None

    def create_booking(self, kennel_id: str, data: Mapping[str, Any]) -> dict:
        """Create a booking, typically from the internal booking form."""

        payload = {k: v for k, v in data.items() if k not in _GENERATED_FIELDS}
        status = BookingStatus.coerce(payload.pop("status", None) or BookingStatus.PENDING)
        source = BookingSource.coerce(payload.pop("source", None) or BookingSource.INTERNAL)
        record = {
            "id": new_id("b"),
            "kennel_id": kennel_id,
            "created_at": utc_now(),
            "status": status.value,
            "source": source.value,
            **payload,
        }
        records = self._load(BOOKING_KEY)
        records.append(record)
        self._save(BOOKING_KEY, records)
        logger.info("Created %s booking %s for %s", source.value, record["id"], kennel_id)
        return record

    def update_booking(self, record: Mapping[str, Any]) -> dict:
        """Merge ``record`` into the stored booking with the same id, or add it."""

        record = dict(record)
        if "status" in record:
            record["status"] = BookingStatus.coerce(record["status"]).value
        return self._merge(BOOKING_KEY, record)

    def set_booking_status(self, booking_id: str, status: BookingStatus | str) -> dict | None:
        return self._patch(BOOKING_KEY, booking_id, {"status": BookingStatus.coerce(status).value})

    def accept_booking(self, booking_id: str) -> dict | None:
        return self.set_booking_status(booking_id, BookingStatus.PRECHECK)

    def cancel_booking(self, booking_id: str) -> dict | None:
        return self.set_booking_status(booking_id, BookingStatus.CANCELLED)

    def create_booking_request(
        self, payload: Mapping[str, Any], kennel_id: str = KENNEL_ID
    ) -> dict:
        """Store a booking request submitted through the owner form on the front page.

        The request becomes a regular pending booking with source ``owner`` so
        it is handled exactly like internal bookings.
        """

        pet_names = payload.get("pet_names")
        record = {
            "id": new_id("b"),
            "kennel_id": kennel_id,
            "created_at": utc_now(),
            "status": BookingStatus.PENDING.value,
            "source": BookingSource.OWNER.value,
            "check_in": payload.get("check_in"),
            "check_out": payload.get("check_out"),
            "pet_name": pet_names,
            "pet_names": pet_names,
            "cat_count": coerce_count(payload.get("cat_count")),
            "room_count": coerce_count(payload.get("room_count")),
            "owner_name": payload.get("owner_name"),
            "owner_phone": payload.get("owner_phone"),
            "owner_email": payload.get("owner_email"),
            "note": payload.get("note"),
            "indoor_pet": payload.get("indoor_pet"),
            "food": payload.get("food"),
            "medicine": payload.get("medicine"),
            "allow_social_media": coerce_flag(payload.get("allow_social_media")),
        }
        records = self._load(BOOKING_KEY)
        records.append(record)
        self._save(BOOKING_KEY, records)
        logger.info("Received owner booking request %s for %s", record["id"], kennel_id)
        return record

    # ------------------------------------------------------------------
    # Stays
    # ------------------------------------------------------------------
    def list_stays_for_kennel(self, kennel_id: str | None) -> list[dict]:
        return [
            stay
            for stay in self._load(STAY_KEY)
            if not kennel_id or stay.get("kennel_id") == kennel_id
        ]

    def get_stay(self, stay_id: str) -> dict | None:
        records = self._load(STAY_KEY)
        idx = _find_index(records, stay_id)
        return records[idx] if idx >= 0 else None

    def create_stay_from_booking(
        self, booking: Mapping[str, Any], overrides: Mapping[str, Any] | None = None
    ) -> dict:
        """Check a booking in as a stay and mark the booking ``converted``.

        This performs two writes. The stay is written first; only when that
        succeeds is the source booking converted, so it stops counting towards
        capacity. A failed second write is logged and left for
        :meth:`reconcile_converted_bookings`.
        """

        record = {
            **booking,
            "id": new_id("c"),
            "booking_id": booking.get("id"),
            "status": BookingStatus.CHECKED_IN.value,
            "cage_id": None,
            **(overrides or {}),
        }
        stays = self._load(STAY_KEY)
        stays.append(record)
        if not self._save(STAY_KEY, stays):
            logger.warning("Stay for booking %s was not stored", booking.get("id"))
            return record

        if booking.get("id") is None or self.set_booking_status(
            booking["id"], BookingStatus.CONVERTED
        ) is None:
            logger.warning(
                "Stay %s created but booking %s could not be marked converted",
                record["id"],
                booking.get("id"),
            )
        else:
            logger.info("Booking %s checked in as stay %s", booking["id"], record["id"])
        return record

    def reconcile_converted_bookings(self, kennel_id: str | None) -> list[str]:
        """Mark bookings that already have a stay as converted.

        Returns the ids of the bookings that were repaired.
        """

        converted_ids = {
            stay.get("booking_id")
            for stay in self.list_stays_for_kennel(kennel_id)
            if stay.get("booking_id")
        }
        records = self._load(BOOKING_KEY)
        repaired = []
        for idx, booking in enumerate(records):
            if (
                booking.get("id") in converted_ids
                and BookingStatus.parse(booking.get("status")) is not BookingStatus.CONVERTED
            ):
                records[idx] = {**booking, "status": BookingStatus.CONVERTED.value}
                repaired.append(booking["id"])
        if not repaired:
            return []
        if not self._save(BOOKING_KEY, records):
            return []
        logger.info("Marked %d booking(s) converted: %s", len(repaired), ", ".join(repaired))
        return repaired

    def update_stay(self, record: Mapping[str, Any]) -> dict:
        """Merge ``record`` into the stored stay (cage, dates, note, status)."""

        record = dict(record)
        if "status" in record:
            status = BookingStatus.coerce(record["status"])
            if status not in STAY_STATUSES:
                raise ValidationError(f"A stay cannot have status {status.value!r}")
            record["status"] = status.value
        return self._merge(STAY_KEY, record)

    def check_out_stay(self, stay_id: str) -> dict | None:
        return self._patch(STAY_KEY, stay_id, {"status": BookingStatus.CHECKED_OUT.value})

    def assign_cage_to_stay(self, stay_id: str, cage_id: str | None) -> dict | None:
        return self._patch(STAY_KEY, stay_id, {"cage_id": cage_id})

    # ------------------------------------------------------------------
    # Cages
    # ------------------------------------------------------------------
    def list_cages_for_kennel(self, kennel_id: str) -> list[dict]:
        return [cage for cage in self._load(CAGE_KEY) if cage.get("kennel_id") == kennel_id]

    def get_cage(self, cage_id: str) -> dict | None:
        records = self._load(CAGE_KEY)
        idx = _find_index(records, cage_id)
        return records[idx] if idx >= 0 else None

    def upsert_cage(self, kennel_id: str, cage: Mapping[str, Any]) -> dict:
        records = self._load(CAGE_KEY)
        cage_id = cage.get("id")
        idx = _find_index(records, cage_id) if cage_id else -1
        if idx == -1 and not cage.get("name"):
            raise ValidationError("Cage name is required")

        if cage_id:
            base = records[idx] if idx >= 0 else {"id": cage_id, "kennel_id": kennel_id}
            updated = {**base, **cage, "kennel_id": kennel_id}
            if idx >= 0:
                records[idx] = updated
            else:
                records.append(updated)
            self._save(CAGE_KEY, records)
            return updated

        created = {
            "id": new_id("g"),
            "kennel_id": kennel_id,
            "name": cage["name"],
            "size": cage.get("size"),
            "location": cage.get("location"),
            "note": cage.get("note"),
        }
        records.append(created)
        self._save(CAGE_KEY, records)
        return created

    def delete_cage(self, kennel_id: str, cage_id: str) -> None:
        records = [
            cage
            for cage in self._load(CAGE_KEY)
            if not (cage.get("kennel_id") == kennel_id and cage.get("id") == cage_id)
        ]
        self._save(CAGE_KEY, records)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------
    def load_kennel_profile(self, kennel_id: str) -> dict:
        stored = load_object(self.store, PROFILE_KEY, None)
        if not isinstance(stored, dict) or stored.get("id") != kennel_id:
            return dict(DEFAULT_PROFILE)
        return {**DEFAULT_PROFILE, **stored}

    def save_kennel_profile(self, profile: Mapping[str, Any]) -> bool:
        return save_object(self.store, PROFILE_KEY, dict(profile))

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------
    def get_capacity_for_range(self, kennel_id: str, start: Any, end: Any) -> list[dict]:
        """Return a capacity summary for each day from ``start`` to ``end`` inclusive."""

        return capacity_for_range(
            self.list_bookings_for_kennel(kennel_id),
            self.list_stays_for_kennel(kennel_id),
            start,
            end,
            capacity=FIXED_DAILY_CAPACITY,
        )

    def has_capacity_for_booking(self, kennel_id: str, booking: Mapping[str, Any]) -> bool:
        """Return whether ``booking`` fits on every day from check-in to check-out.

        Both the arrival and the departure day are checked; a same-day booking
        checks that single day.

        Occupancy already attributed to the booking itself (while it is
        accepted, or through a stay created from it) is not counted against it.
        """

        check_in = parse_date(booking.get("check_in"))
        check_out = parse_date(booking.get("check_out"))
        if check_in is None or check_out is None or check_out < check_in:
            return False

        booking_id = booking.get("id")
        bookings = [
            other
            for other in self.list_bookings_for_kennel(kennel_id)
            if booking_id is None or other.get("id") != booking_id
        ]
        stays = [
            stay
            for stay in self.list_stays_for_kennel(kennel_id)
            if booking_id is None or stay.get("booking_id") != booking_id
        ]
        needed = occupancy(dict(booking))
        days = capacity_for_range(
            bookings,
            stays,
            check_in,
            check_out,
            capacity=FIXED_DAILY_CAPACITY,
        )
        return all(day["booked"] + needed <= day["capacity"] for day in days)

    def close(self) -> None:
        if self.store is not None:
            self.store.close()


__all__ = [
    "BookingLedger",
    "BookingSource",
    "BookingStatus",
    "DEFAULT_PROFILE",
    "FIXED_DAILY_CAPACITY",
    "KENNEL_ID",
    "ValidationError",
]
