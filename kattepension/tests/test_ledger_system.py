import json
import unittest

from kattepension.ledger.storage import BOOKING_KEY, STAY_KEY, KeyValueStore, MemoryStore
from kattepension.ledger.system import (
    DEFAULT_PROFILE,
    KENNEL_ID,
    BookingLedger,
    BookingStatus,
    ValidationError,
)


class FailingWritesStore(MemoryStore):
    """Accepts writes until ``fail_on`` is set for a key."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_on: set[str] = set()

    def set(self, key: str, value: str) -> None:
        if key in self.fail_on:
            raise OSError("quota exceeded")
        super().set(key, value)


class BookingLedgerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.ledger = BookingLedger(self.store)

    def tearDown(self) -> None:
        self.ledger.close()

    def _booking(self, **fields) -> dict:
        data = {"check_in": "2024-03-01", "check_out": "2024-03-04", "cat_count": 1}
        data.update(fields)
        return self.ledger.create_booking(KENNEL_ID, data)

    def test_create_booking_defaults(self) -> None:
        booking = self._booking(owner_name="Mette", pet_name="Findus")
        self.assertTrue(booking["id"].startswith("b_"))
        self.assertEqual(booking["kennel_id"], KENNEL_ID)
        self.assertEqual(booking["status"], "pending")
        self.assertEqual(booking["source"], "internal")
        self.assertIn("created_at", booking)
        self.assertEqual(booking["pet_name"], "Findus")

        stored = json.loads(self.store.get(BOOKING_KEY))
        self.assertEqual([row["id"] for row in stored], [booking["id"]])

    def test_create_booking_keeps_ledger_fields(self) -> None:
        booking = self._booking(id="spoofed", kennel_id="other", status="precheck", source="other")
        self.assertNotEqual(booking["id"], "spoofed")
        self.assertEqual(booking["kennel_id"], KENNEL_ID)
        self.assertEqual(booking["status"], "precheck")
        self.assertEqual(booking["source"], "other")

    def test_create_booking_rejects_unknown_status(self) -> None:
        with self.assertRaises(ValidationError):
            self._booking(status="teleported")
        with self.assertRaises(ValidationError):
            self._booking(source="fax")

    def test_list_bookings_filters_by_kennel_and_defaults_status(self) -> None:
        mine = self._booking()
        self.ledger.create_booking("other-kennel", {"check_in": "2024-03-01"})
        legacy = {"id": "b_legacy", "kennel_id": KENNEL_ID, "check_in": "2024-01-01"}
        self.ledger.update_booking(legacy)

        bookings = self.ledger.list_bookings_for_kennel(KENNEL_ID)
        self.assertEqual({row["id"] for row in bookings}, {mine["id"], "b_legacy"})
        by_id = {row["id"]: row for row in bookings}
        self.assertEqual(by_id["b_legacy"]["status"], "pending")
        self.assertEqual(len(self.ledger.list_bookings_for_kennel("")), 3)

    def test_update_booking_merges_and_upserts(self) -> None:
        booking = self._booking(note="Første ophold")
        updated = self.ledger.update_booking({"id": booking["id"], "food": "Vådfoder"})
        self.assertEqual(updated["note"], "Første ophold")
        self.assertEqual(updated["food"], "Vådfoder")
        self.assertEqual(self.ledger.get_booking(booking["id"])["food"], "Vådfoder")

        inserted = self.ledger.update_booking({"id": "b_new", "kennel_id": KENNEL_ID})
        self.assertEqual(inserted["id"], "b_new")
        self.assertIsNotNone(self.ledger.get_booking("b_new"))

        with self.assertRaises(ValidationError):
            self.ledger.update_booking({"note": "no id"})

    def test_status_transitions(self) -> None:
        booking = self._booking()
        self.assertEqual(self.ledger.accept_booking(booking["id"])["status"], "precheck")
        self.assertEqual(self.ledger.cancel_booking(booking["id"])["status"], "cancelled")
        archived = self.ledger.set_booking_status(booking["id"], BookingStatus.ARCHIVED)
        self.assertEqual(archived["status"], "archived")
        self.assertIsNone(self.ledger.accept_booking("b_missing"))
        with self.assertRaises(ValidationError):
            self.ledger.set_booking_status(booking["id"], "unknown")

    def test_owner_booking_request(self) -> None:
        request = self.ledger.create_booking_request(
            {
                "check_in": "2024-07-01",
                "check_out": "2024-07-08",
                "cat_count": "",
                "room_count": "abc",
                "owner_name": "Lars",
                "owner_phone": "22 33 44 55",
                "owner_email": "lars@example.dk",
                "pet_names": "Misser, Pjuske",
                "indoor_pet": "inde",
                "food": "Tørfoder",
                "medicine": "",
                "allow_social_media": True,
                "note": "Pjuske er genert",
            }
        )
        self.assertEqual(request["status"], "pending")
        self.assertEqual(request["source"], "owner")
        self.assertEqual(request["kennel_id"], KENNEL_ID)
        self.assertEqual(request["cat_count"], 1)
        self.assertEqual(request["room_count"], 1)
        self.assertEqual(request["pet_name"], "Misser, Pjuske")
        self.assertTrue(request["allow_social_media"])

        two_cats = self.ledger.create_booking_request(
            {"cat_count": "2", "room_count": "0", "allow_social_media": "false"}
        )
        self.assertEqual(two_cats["cat_count"], 2)
        self.assertEqual(two_cats["room_count"], 1)
        self.assertIs(two_cats["allow_social_media"], False)

        from_form = self.ledger.create_booking_request({"allow_social_media": "true"})
        self.assertIs(from_form["allow_social_media"], True)
        unchecked = self.ledger.create_booking_request({})
        self.assertIs(unchecked["allow_social_media"], False)

    def test_create_stay_from_booking_converts_booking(self) -> None:
        booking = self.ledger.accept_booking(self._booking(cat_count=2)["id"])
        stay = self.ledger.create_stay_from_booking(booking)

        self.assertTrue(stay["id"].startswith("c_"))
        self.assertNotEqual(stay["id"], booking["id"])
        self.assertEqual(stay["booking_id"], booking["id"])
        self.assertEqual(stay["status"], "checked_in")
        self.assertIsNone(stay["cage_id"])
        self.assertEqual(stay["cat_count"], 2)
        self.assertEqual(self.ledger.get_booking(booking["id"])["status"], "converted")
        self.assertEqual(self.ledger.list_stays_for_kennel(KENNEL_ID), [stay])

    def test_create_stay_overrides(self) -> None:
        booking = self._booking()
        stay = self.ledger.create_stay_from_booking(booking, {"cage_id": "g_1", "note": "Bur 1"})
        self.assertEqual(stay["cage_id"], "g_1")
        self.assertEqual(stay["note"], "Bur 1")

    def test_stay_and_booking_update_are_not_atomic(self) -> None:
        store = FailingWritesStore()
        ledger = BookingLedger(store)
        booking = ledger.accept_booking(
            ledger.create_booking(KENNEL_ID, {"check_in": "2024-03-01", "check_out": "2024-03-02"})["id"]
        )
        store.fail_on.add(BOOKING_KEY)
        with self.assertLogs("kattepension.ledger", level="WARNING"):
            stay = ledger.create_stay_from_booking(booking)
        self.assertEqual(ledger.get_stay(stay["id"])["status"], "checked_in")
        self.assertEqual(ledger.get_booking(booking["id"])["status"], "precheck")

        store.fail_on.clear()
        self.assertEqual(ledger.reconcile_converted_bookings(KENNEL_ID), [booking["id"]])
        self.assertEqual(ledger.get_booking(booking["id"])["status"], "converted")
        self.assertEqual(ledger.reconcile_converted_bookings(KENNEL_ID), [])

    def test_failed_stay_write_leaves_booking_untouched(self) -> None:
        store = FailingWritesStore()
        ledger = BookingLedger(store)
        booking = ledger.accept_booking(ledger.create_booking(KENNEL_ID, {})["id"])
        store.fail_on.add(STAY_KEY)
        with self.assertLogs("kattepension.ledger", level="WARNING"):
            ledger.create_stay_from_booking(booking)
        self.assertEqual(ledger.list_stays_for_kennel(KENNEL_ID), [])
        self.assertEqual(ledger.get_booking(booking["id"])["status"], "precheck")

    def test_stay_updates(self) -> None:
        stay = self.ledger.create_stay_from_booking(self._booking())
        moved = self.ledger.update_stay({"id": stay["id"], "check_out": "2024-03-06"})
        self.assertEqual(moved["check_out"], "2024-03-06")
        self.assertEqual(moved["check_in"], "2024-03-01")

        caged = self.ledger.assign_cage_to_stay(stay["id"], "g_7")
        self.assertEqual(caged["cage_id"], "g_7")
        cleared = self.ledger.assign_cage_to_stay(stay["id"], None)
        self.assertIsNone(cleared["cage_id"])

        checked_out = self.ledger.check_out_stay(stay["id"])
        self.assertEqual(checked_out["status"], "checked_out")
        self.assertIsNone(self.ledger.check_out_stay("c_missing"))
        self.assertIsNone(self.ledger.assign_cage_to_stay("c_missing", "g_7"))

        with self.assertRaises(ValidationError):
            self.ledger.update_stay({"id": stay["id"], "status": "precheck"})

    def test_cage_upsert_and_delete(self) -> None:
        cage = self.ledger.upsert_cage(KENNEL_ID, {"name": "Bur 1", "size": "Stor"})
        self.assertTrue(cage["id"].startswith("g_"))
        self.assertEqual(cage["kennel_id"], KENNEL_ID)
        self.assertIsNone(cage["location"])

        renamed = self.ledger.upsert_cage(KENNEL_ID, {"id": cage["id"], "name": "Havebur"})
        self.assertEqual(renamed["name"], "Havebur")
        self.assertEqual(renamed["size"], "Stor")

        explicit = self.ledger.upsert_cage(KENNEL_ID, {"id": "g_fixed", "name": "Bur 2"})
        self.assertEqual(explicit["id"], "g_fixed")
        self.ledger.upsert_cage("other-kennel", {"name": "Fremmed bur"})

        names = sorted(row["name"] for row in self.ledger.list_cages_for_kennel(KENNEL_ID))
        self.assertEqual(names, ["Bur 2", "Havebur"])

        self.ledger.delete_cage("other-kennel", cage["id"])
        self.assertIsNotNone(self.ledger.get_cage(cage["id"]))
        self.ledger.delete_cage(KENNEL_ID, cage["id"])
        self.assertIsNone(self.ledger.get_cage(cage["id"]))

        with self.assertRaises(ValidationError):
            self.ledger.upsert_cage(KENNEL_ID, {"size": "Lille"})

    def test_profile_round_trip(self) -> None:
        self.assertEqual(self.ledger.load_kennel_profile(KENNEL_ID), DEFAULT_PROFILE)

        profile = {"id": KENNEL_ID, "name": "Annisse Kattehotel", "nightly_rate": 350}
        self.assertTrue(self.ledger.save_kennel_profile(profile))
        loaded = self.ledger.load_kennel_profile(KENNEL_ID)
        self.assertEqual(loaded["name"], "Annisse Kattehotel")
        self.assertEqual(loaded["nightly_rate"], 350)
        self.assertEqual(loaded["city"], DEFAULT_PROFILE["city"])

        other = self.ledger.load_kennel_profile("other-kennel")
        self.assertEqual(other["name"], DEFAULT_PROFILE["name"])

        loaded["name"] = "changed"
        self.assertEqual(DEFAULT_PROFILE["name"], "Annisse Kattepension")

    def test_absent_storage_degrades_to_defaults(self) -> None:
        ledger = BookingLedger(None)
        booking = ledger.create_booking(KENNEL_ID, {"check_in": "2024-03-01"})
        self.assertEqual(booking["status"], "pending")
        self.assertEqual(ledger.list_bookings_for_kennel(KENNEL_ID), [])
        self.assertIsNone(ledger.get_booking(booking["id"]))
        self.assertEqual(ledger.load_kennel_profile(KENNEL_ID), DEFAULT_PROFILE)
        self.assertFalse(ledger.save_kennel_profile({"id": KENNEL_ID}))
        days = ledger.get_capacity_for_range(KENNEL_ID, "2024-03-01", "2024-03-02")
        self.assertEqual([day["free"] for day in days], [6, 6])

    def test_custom_store_implementation(self) -> None:
        class DictStore(KeyValueStore):
            def __init__(self) -> None:
                self.data = {}

            def get(self, key):
                return self.data.get(key)

            def set(self, key, value):
                self.data[key] = value

            def remove(self, key):
                self.data.pop(key, None)

        store = DictStore()
        ledger = BookingLedger(store)
        ledger.upsert_cage(KENNEL_ID, {"name": "Bur 1"})
        self.assertIn("annisse_cages_v1", store.data)


if __name__ == "__main__":
    unittest.main()
