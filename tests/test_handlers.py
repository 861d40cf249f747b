from datetime import datetime, timedelta, timezone

import pytest

from clubbooking.handlers import ApiError, ClubService
from clubbooking.models import format_time
from clubbooking.store import DocumentStore

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def service(store):
    return ClubService(store, clock=lambda: NOW)


def _club_payload(club_id="c1", name="Alpha"):
    return {"id": club_id, "name": name, "address": "Main st", "price_per_hour": 150.0, "available_pcs": 5}


def _setup_booking_target(store, available=True):
    store.collection("clubs").document("club-doc").set(
        {"ClubID": "c1", "Name": "Alpha", "PricePerHour": 150.0}
    )
    store.collection("computers").document("pc-doc").set(
        {"ClubID": "c1", "PCNumber": 3, "IsAvailable": available}
    )


def test_create_and_get_club(service):
    result = service.create_club(_club_payload())
    assert result == {"message": "Клуб добавлен", "id": "c1"}
    assert service.get_club("c1") == _club_payload()


def test_club_stored_under_field_names(service, store):
    service.create_club(_club_payload())
    data = store.collection("clubs").document("c1").get().data
    assert data["PricePerHour"] == 150.0
    assert data["Name"] == "Alpha"


def test_create_club_requires_id(service):
    with pytest.raises(ApiError) as info:
        service.create_club({"name": "Alpha"})
    assert info.value.status == 400
    assert info.value.to_dict() == {"error": "ID обязателен"}


def test_create_club_rejects_bad_types(service):
    with pytest.raises(ApiError) as info:
        service.create_club({"id": "c1", "price_per_hour": "cheap"})
    assert info.value.status == 400


def test_get_missing_club(service):
    with pytest.raises(ApiError) as info:
        service.get_club("nope")
    assert info.value.status == 404
    assert info.value.message == "Клуб не найден"


def test_list_clubs_empty_then_filled(service):
    assert service.list_clubs() is None
    service.create_club(_club_payload("b", "Beta"))
    service.create_club(_club_payload("a", "Alpha"))
    assert [club["id"] for club in service.list_clubs()] == ["a", "b"]


def test_update_and_delete_club(service):
    service.create_club(_club_payload())
    assert service.update_club("c1", _club_payload(name="Omega")) == {"message": "Клуб обновлен"}
    assert service.get_club("c1")["name"] == "Omega"
    assert service.delete_club("c1") == {"message": "Клуб удален"}
    with pytest.raises(ApiError) as info:
        service.get_club("c1")
    assert info.value.status == 404


def test_create_computers_and_list_for_club(service):
    result = service.create_computers(
        "c1", [{"number": 1, "is_available": True}, {"number": 2, "description": "fast"}]
    )
    assert result == {"message": "Добавлено 2 компьютеров", "clubId": "c1"}
    service.create_computers("c2", [{"number": 9}])
    computers = service.club_computers("c1")
    assert sorted(c["number"] for c in computers) == [1, 2]
    assert all(c["club_id"] == "c1" for c in computers)
    assert len(service.list_computers()) == 3


def test_create_computers_empty_fails(service):
    with pytest.raises(ApiError) as info:
        service.create_computers("c1", [])
    assert info.value.status == 500


def test_create_computers_requires_list(service):
    with pytest.raises(ApiError) as info:
        service.create_computers("c1", {"number": 1})
    assert info.value.status == 400


def test_club_computers_skips_malformed(service, store):
    store.collection("computers").document("good").set({"ClubID": "c1", "Number": 4})
    store.collection("computers").document("bad").set({"ClubID": "c1", "Number": "four"})
    computers = service.club_computers("c1")
    assert [c["id"] for c in computers] == ["good"]
    assert service.club_computers("other") == []


def test_list_computers_empty(service):
    assert service.list_computers() is None


def test_create_booking(service, store):
    _setup_booking_target(store)
    start = NOW + timedelta(hours=3)
    result = service.create_booking(
        "user-1", {"ClubID": "c1", "PCNumber": 3, "StartTime": format_time(start), "Hours": 2}
    )
    assert result["Status"] == "active"
    assert result["UserID"] == "user-1"
    assert result["TotalPrice"] == 150.0 * 2
    assert result["EndTime"] == format_time(start + timedelta(hours=2))
    saved = store.collection("bookings").document(result["ID"]).get().data
    assert saved["PCNumber"] == 3
    assert store.collection("computers").document("pc-doc").get().data["IsAvailable"] is False


def test_create_booking_unknown_club(service):
    with pytest.raises(ApiError) as info:
        service.create_booking("u", {"ClubID": "none", "PCNumber": 1, "Hours": 1})
    assert info.value.status == 404


def test_create_booking_unknown_computer(service, store):
    _setup_booking_target(store)
    with pytest.raises(ApiError) as info:
        service.create_booking("u", {"ClubID": "c1", "PCNumber": 99, "Hours": 1})
    assert info.value.status == 400
    assert info.value.message == "Компьютер не найден"


def test_create_booking_busy_computer(service, store):
    _setup_booking_target(store, available=False)
    with pytest.raises(ApiError) as info:
        service.create_booking("u", {"ClubID": "c1", "PCNumber": 3, "Hours": 1})
    assert info.value.message == "Компьютер уже занят"


def test_create_booking_overlap(service, store):
    _setup_booking_target(store)
    store.collection("bookings").document("old").set(
        {"ClubID": "c1", "PCNumber": 3, "Status": "active", "EndTime": NOW + timedelta(hours=1)}
    )
    with pytest.raises(ApiError) as info:
        service.create_booking("u", {"ClubID": "c1", "PCNumber": 3, "Hours": 1})
    assert info.value.message == "Компьютер уже забронирован на это время"


def test_create_booking_bad_payload(service):
    with pytest.raises(ApiError) as info:
        service.create_booking("u", {"ClubID": "c1", "PCNumber": "three"})
    assert info.value.status == 400


def test_user_bookings(service, store):
    store.collection("clubs").document("c1").set({"Name": "Alpha"})
    bookings = store.collection("bookings")
    bookings.document("late").set({
        "user_id": "u", "status": "active", "club_id": "c1",
        "start_time": NOW + timedelta(hours=5), "end_time": NOW + timedelta(hours=6),
    })
    bookings.document("early").set({
        "user_id": "u", "status": "active", "club_id": "c1",
        "start_time": NOW + timedelta(hours=1), "end_time": NOW + timedelta(hours=2),
    })
    bookings.document("past").set({
        "user_id": "u", "status": "active", "club_id": "c1",
        "start_time": NOW - timedelta(hours=3), "end_time": NOW - timedelta(hours=2),
    })
    bookings.document("other").set({
        "user_id": "v", "status": "active", "club_id": "c1",
        "start_time": NOW, "end_time": NOW + timedelta(hours=2),
    })
    result = service.user_bookings("u")
    assert [b["id"] for b in result] == ["early", "late"]
    assert all(b["club_name"] == "Alpha" for b in result)
    assert service.user_bookings("nobody") is None


def _put_booking(store, **overrides):
    data = {
        "UserID": "u", "Status": "active", "ClubID": "c1", "PCNumber": 3,
        "StartTime": NOW + timedelta(hours=4),
    }
    data.update(overrides)
    store.collection("bookings").document("b1").set(data)


def test_cancel_booking(service, store):
    _put_booking(store)
    store.collection("computers").document("pc").set({"club_id": "c1", "number": 3, "is_available": False})
    assert service.cancel_booking("u", "b1") == {"message": "Бронирование успешно отменено"}
    assert store.collection("bookings").document("b1").get().data["status"] == "cancelled"
    assert store.collection("computers").document("pc").get().data["is_available"] is True


def test_cancel_missing_booking(service):
    with pytest.raises(ApiError) as info:
        service.cancel_booking("u", "none")
    assert info.value.status == 404


def test_cancel_foreign_booking(service, store):
    _put_booking(store)
    with pytest.raises(ApiError) as info:
        service.cancel_booking("intruder", "b1")
    assert info.value.status == 403


def test_cancel_inactive_booking(service, store):
    _put_booking(store, Status="cancelled")
    with pytest.raises(ApiError) as info:
        service.cancel_booking("u", "b1")
    assert info.value.message == "Бронирование уже отменено или завершено"


def test_cancel_too_late(service, store):
    _put_booking(store, StartTime=NOW + timedelta(minutes=30))
    with pytest.raises(ApiError) as info:
        service.cancel_booking("u", "b1")
    assert info.value.message == "Можно отменить только за час до начала"