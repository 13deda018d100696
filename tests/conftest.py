import itertools
from datetime import date, timedelta
from typing import Any, Optional

import pytest

from app.cache import Cache
from app.services.audit_notes import NoteDispatcher
from app.services.hubspot_objects import DEFAULT_OBJECT_TYPES
from app.services.hubspot_service import HubSpotAPIError, _stringify

TODAY = date(2030, 5, 15)


class FakeRedis:
    """Just enough of the redis client for Cache"""

    def __init__(self):
        self.store: dict[str, str] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.store.pop(key, None) is not None
        return removed

    def scan_iter(self, match=None):
        prefix = (match or "*").rstrip("*")
        return [k for k in list(self.store) if k.startswith(prefix)]

    def ping(self):
        return True


class FakeHubSpot:
    """
    In-memory stand-in for HubSpotService.

    Objects are stored per object type with string properties, associations
    are symmetric. ``fail(method, object_type)`` makes the next matching
    calls raise HubSpotAPIError.
    """

    def __init__(self):
        self.types = DEFAULT_OBJECT_TYPES
        self.objects: dict[str, dict[str, dict[str, Any]]] = {}
        self.associations: set[tuple[str, str, str, str]] = set()
        self.calls: list[tuple] = []
        self.notes: list[dict] = []
        self._failures: list[dict] = []
        self._ids = itertools.count(1000)

    # -- test helpers --------------------------------------------------

    def add(self, object_type: str, object_id: str, **properties) -> str:
        self.objects.setdefault(object_type, {})[str(object_id)] = {
            "id": str(object_id),
            "properties": _stringify(properties),
            "archived": False,
        }
        return str(object_id)

    def props(self, object_type: str, object_id: str) -> dict[str, str]:
        return self.objects[object_type][str(object_id)]["properties"]

    def link(self, from_type, from_id, to_type, to_id) -> None:
        self.associations.add((from_type, str(from_id), to_type, str(to_id)))
        self.associations.add((to_type, str(to_id), from_type, str(from_id)))

    def fail(self, method: str, object_type: Optional[str] = None, status: int = 500, times: int = 1000,
             match: Optional[dict] = None) -> None:
        self._failures.append(
            {"method": method, "object_type": object_type, "status": status, "times": times, "match": match}
        )

    def writes(self, method: Optional[str] = None) -> list[tuple]:
        write_methods = {
            "create_object", "update_object", "batch_update_objects", "archive_object", "create_association"
        }
        return [c for c in self.calls if c[0] in write_methods and (method is None or c[0] == method)]

    def _check(self, method: str, object_type: Optional[str], payload: Optional[dict] = None) -> None:
        for failure in self._failures:
            if failure["method"] != method or failure["times"] <= 0:
                continue
            if failure["object_type"] not in (None, object_type):
                continue
            if failure["match"] and not all(
                (payload or {}).get(k) == v for k, v in failure["match"].items()
            ):
                continue
            failure["times"] -= 1
            raise HubSpotAPIError(failure["status"], f"Injected {method} failure")

    def _live(self, object_type: str, object_id: str) -> Optional[dict]:
        obj = self.objects.get(object_type, {}).get(str(object_id))
        return obj if obj and not obj["archived"] else None

    # -- gateway surface -----------------------------------------------

    async def search_objects(self, object_type, filters=None, properties=None, sorts=None, limit=10,
                             filter_groups=None):
        self.calls.append(("search_objects", object_type, filters))
        self._check("search_objects", object_type)

        def matches(props):
            for f in filters or []:
                value = props.get(f["propertyName"], "")
                if f["operator"] == "EQ" and value != f["value"]:
                    return False
                if f["operator"] == "NEQ" and value == f["value"]:
                    return False
            return True

        results = [
            {"id": o["id"], "properties": dict(o["properties"])}
            for o in self.objects.get(object_type, {}).values()
            if not o["archived"] and matches(o["properties"])
        ]
        for sort in reversed(sorts or []):
            results.sort(
                key=lambda r: r["properties"].get(sort["propertyName"], ""),
                reverse=sort.get("direction") == "DESCENDING",
            )
        return {"total": len(results), "results": results[:limit]}

    async def get_object(self, object_type, object_id, properties=None, associations=None):
        self.calls.append(("get_object", object_type, str(object_id)))
        self._check("get_object", object_type)
        obj = self._live(object_type, object_id)
        if not obj:
            return None
        result = {"id": obj["id"], "properties": dict(obj["properties"])}
        if associations:
            result["associations"] = {}
            for to_type in associations:
                ids = self._associated(object_type, obj["id"], to_type)
                if ids:
                    result["associations"][to_type] = {
                        "results": [{"id": i, "type": "association"} for i in ids]
                    }
        return result

    async def batch_read_objects(self, object_type, ids, properties=None):
        self.calls.append(("batch_read_objects", object_type, list(ids)))
        self._check("batch_read_objects", object_type)
        results = []
        for object_id in ids:
            obj = self._live(object_type, object_id)
            if obj:
                results.append({"id": obj["id"], "properties": dict(obj["properties"])})
        return results

    async def create_object(self, object_type, properties, associations=None):
        self.calls.append(("create_object", object_type, dict(properties)))
        self._check("create_object", object_type)
        object_id = str(next(self._ids))
        self.add(object_type, object_id, **properties)
        return {"id": object_id, "properties": self.props(object_type, object_id)}

    async def update_object(self, object_type, object_id, properties):
        self.calls.append(("update_object", object_type, str(object_id), dict(properties)))
        self._check("update_object", object_type, properties)
        obj = self._live(object_type, object_id)
        if not obj:
            raise HubSpotAPIError(404, "Object not found")
        obj["properties"].update(_stringify(properties))
        return {"id": obj["id"], "properties": dict(obj["properties"])}

    async def batch_update_objects(self, object_type, updates):
        self.calls.append(("batch_update_objects", object_type, [dict(u) for u in updates]))
        self._check("batch_update_objects", object_type)
        results = []
        for update in updates:
            obj = self._live(object_type, update["id"])
            if obj:
                obj["properties"].update(_stringify(update["properties"]))
                results.append({"id": obj["id"], "properties": dict(obj["properties"])})
        return results

    async def archive_object(self, object_type, object_id):
        self.calls.append(("archive_object", object_type, str(object_id)))
        self._check("archive_object", object_type)
        obj = self._live(object_type, object_id)
        if obj:
            obj["archived"] = True

    async def create_association(self, from_type, from_id, to_type, to_id):
        self.calls.append(("create_association", from_type, str(from_id), to_type, str(to_id)))
        self._check("create_association", to_type)
        self.link(from_type, from_id, to_type, to_id)
        return {"fromObjectId": from_id, "toObjectId": to_id}

    async def remove_association(self, from_type, from_id, to_type, to_id):
        self.associations.discard((from_type, str(from_id), to_type, str(to_id)))
        self.associations.discard((to_type, str(to_id), from_type, str(from_id)))

    async def list_associations(self, from_type, from_id, to_type, limit=500):
        self.calls.append(("list_associations", from_type, str(from_id), to_type))
        self._check("list_associations", from_type, {"from_id": str(from_id)})
        return self._associated(from_type, from_id, to_type)

    async def batch_read_associations(self, from_type, from_ids, to_type):
        self.calls.append(("batch_read_associations", from_type, list(from_ids), to_type))
        self._check("batch_read_associations", from_type)
        return {str(i): self._associated(from_type, i, to_type) for i in from_ids}

    async def create_note(self, body, to_id, association_type_id):
        self.calls.append(("create_note", str(to_id), association_type_id))
        self._check("create_note", None)
        note = {"id": str(next(self._ids)), "body": body, "to_id": str(to_id), "type": association_type_id}
        self.notes.append(note)
        return note

    def _associated(self, from_type, from_id, to_type) -> list[str]:
        return sorted(
            t_id
            for f_type, f_id, t_type, t_id in self.associations
            if f_type == from_type and f_id == str(from_id) and t_type == to_type
        )


@pytest.fixture
def fake_hubspot():
    return FakeHubSpot()


@pytest.fixture
def types():
    return DEFAULT_OBJECT_TYPES


@pytest.fixture
def fake_cache():
    return Cache(client=FakeRedis())


@pytest.fixture
def notes(fake_hubspot):
    return NoteDispatcher(fake_hubspot)


@pytest.fixture
def today():
    return TODAY


def future(days: int = 10) -> str:
    return (TODAY + timedelta(days=days)).isoformat()


def past(days: int = 1) -> str:
    return (TODAY - timedelta(days=days)).isoformat()


@pytest.fixture
def seed(fake_hubspot, types):
    """Helpers to seed contacts, sessions and bookings"""

    class Seed:
        def contact(self, contact_id="101", student_id="STU123", email="jane@example.com", **credits):
            balances = {"sj_credits": 0, "cs_credits": 0, "sjmini_credits": 0, "shared_mock_credits": 0}
            balances.update(credits)
            return fake_hubspot.add(
                types.contacts,
                contact_id,
                student_id=student_id,
                email=email,
                firstname="Jane",
                lastname="Doe",
                **balances,
            )

        def exam(self, exam_id="501", mock_type="Situational Judgment", capacity=10, total_bookings=0,
                 exam_date=None, is_active="true", location="Calgary"):
            return fake_hubspot.add(
                types.mock_exams,
                exam_id,
                mock_type=mock_type,
                capacity=capacity,
                total_bookings=total_bookings,
                exam_date=exam_date or future(),
                is_active=is_active,
                location=location,
                start_time="",
                end_time="",
            )

        def booking(self, record_id, exam_id=None, contact_id=None, is_active="Active", **props):
            """``booking_id`` in props is the HubSpot composite key property"""
            fake_hubspot.add(types.bookings, record_id, is_active=is_active, **props)
            if exam_id:
                fake_hubspot.link(types.bookings, record_id, types.mock_exams, exam_id)
            if contact_id:
                fake_hubspot.link(types.bookings, record_id, types.contacts, contact_id)
            return record_id

    return Seed()
