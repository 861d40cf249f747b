"""Club, computer and booking operations behind the HTTP routes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from .models import Booking, Computer, ComputerClub, ZERO_TIME, format_time, parse_time
from .store import DocumentStore, NotFoundError

CLUB_ID = "ClubID"

_MISSING = object()

_CLUB_FIELDS = (
    ("id", "ID"),
    ("name", "Name"),
    ("address", "Address"),
    ("price_per_hour", "PricePerHour"),
    ("available_pcs", "AvailablePCs"),
)
_COMPUTER_FIELDS = (
    ("id", "ID"),
    ("club_id", "ClubID"),
    ("number", "Number"),
    ("description", "Description"),
    ("is_available", "IsAvailable"),
)
_BOOKING_FIELDS = (
    ("id", "ID"),
    ("club_id", "ClubID"),
    ("club_name", "ClubName"),
    ("user_id", "UserID"),
    ("pc_number", "PCNumber"),
    ("start_time", "StartTime"),
    ("end_time", "EndTime"),
    ("total_price", "TotalPrice"),
    ("status", "Status"),
    ("created_at", "CreatedAt"),
)


class ApiError(Exception):
    """A request failure with the HTTP status and message to report."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message}


def _field(data: Mapping[str, Any], name: str) -> Any:
    """Look a stored field up by exact name, then case-insensitively."""
    if name in data:
        return data[name]
    folded = name.lower()
    keys = [key for key in data if isinstance(key, str)]
    for key in keys:
        if key.lower() == folded:
            return data[key]
    for key in keys:
        if key.replace("_", "").lower() == folded:
            return data[key]
    return _MISSING


def _decode(model: Any, spec: tuple[tuple[str, str], ...], data: Mapping[str, Any], strict: bool) -> Any:
    payload = {}
    for json_key, stored_name in spec:
        value = _field(data, stored_name)
        if value is not _MISSING:
            payload[json_key] = value
    try:
        return model.from_dict(payload)
    except ValueError:
        if strict:
            raise
    usable = {}
    for key, value in payload.items():
        try:
            model.from_dict({key: value})
        except ValueError:
            continue
        usable[key] = value
    return model.from_dict(usable)


def _club_record(club: ComputerClub) -> dict[str, Any]:
    return {
        "ID": club.id,
        "Name": club.name,
        "Address": club.address,
        "PricePerHour": club.price_per_hour,
        "AvailablePCs": club.available_pcs,
    }


def _computer_record(computer: Computer) -> dict[str, Any]:
    return {
        "ID": computer.id,
        "ClubID": computer.club_id,
        "Number": computer.number,
        "Description": computer.description,
        "IsAvailable": computer.is_available,
    }


def _bind(model: Any, payload: Any) -> Any:
    try:
        return model.from_dict(payload)
    except ValueError as exc:
        raise ApiError(400, str(exc)) from exc


def _bind_booking_request(payload: Any) -> tuple[str, int, datetime, int]:
    if not isinstance(payload, Mapping):
        raise ApiError(400, "expected a JSON object")
    club_id = _field(payload, "ClubID")
    pc_number = _field(payload, "PCNumber")
    start = _field(payload, "StartTime")
    hours = _field(payload, "Hours")
    if club_id is _MISSING or club_id is None:
        club_id = ""
    elif not isinstance(club_id, str):
        raise ApiError(400, "field 'ClubID' must be a string")
    for name, value in (("PCNumber", pc_number), ("Hours", hours)):
        if value is not _MISSING and value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ApiError(400, f"field {name!r} must be an integer")
    pc_number = 0 if pc_number is _MISSING or pc_number is None else pc_number
    hours = 0 if hours is _MISSING or hours is None else hours
    if start is _MISSING or start is None:
        start_time = ZERO_TIME
    else:
        try:
            start_time = parse_time(start)
        except ValueError as exc:
            raise ApiError(400, str(exc)) from exc
    return club_id, pc_number, start_time, hours


def _check_club_record(data: Mapping[str, Any]) -> float:
    kinds = {
        "Address": str,
        "ClubID": str,
        "ID": str,
        "Name": str,
    }
    for name, kind in kinds.items():
        value = data.get(name)
        if value is not None and not isinstance(value, kind):
            raise ValueError(f"field {name!r} must be a string")
    pcs = data.get("AvailablePCs")
    if pcs is not None and (isinstance(pcs, bool) or not isinstance(pcs, int)):
        raise ValueError("field 'AvailablePCs' must be an integer")
    price = data.get("PricePerHour")
    if price is None:
        return 0.0
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise ValueError("field 'PricePerHour' must be a number")
    return float(price)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class ClubService:
    """Operations on clubs, their computers and bookings over a document store."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.clock = clock or _default_clock

    def list_clubs(self) -> list[dict[str, Any]] | None:
        """Return every club; ``None`` when there are none, as the API reports null."""
        clubs = []
        for snap in self.store.collection("clubs").all():
            club = _decode(ComputerClub, _CLUB_FIELDS, snap.data, strict=False)
            club.id = snap.id
            clubs.append(club.to_dict())
        return clubs or None

    def get_club(self, club_id: str) -> dict[str, Any]:
        try:
            snap = self.store.collection("clubs").document(club_id).get()
        except (NotFoundError, ValueError) as exc:
            raise ApiError(404, "Клуб не найден") from exc
        club = _decode(ComputerClub, _CLUB_FIELDS, snap.data, strict=False)
        club.id = snap.id
        return club.to_dict()

    def create_club(self, payload: Any) -> dict[str, Any]:
        club = _bind(ComputerClub, payload)
        if not club.id:
            raise ApiError(400, "ID обязателен")
        try:
            self.store.collection("clubs").document(club.id).set(_club_record(club))
        except ValueError as exc:
            raise ApiError(500, str(exc)) from exc
        return {"message": "Клуб добавлен", "id": club.id}

    def update_club(self, club_id: str, payload: Any) -> dict[str, Any]:
        club = _bind(ComputerClub, payload)
        try:
            self.store.collection("clubs").document(club_id).set(_club_record(club))
        except ValueError as exc:
            raise ApiError(500, str(exc)) from exc
        return {"message": "Клуб обновлен"}

    def delete_club(self, club_id: str) -> dict[str, Any]:
        try:
            self.store.collection("clubs").document(club_id).delete()
        except ValueError as exc:
            raise ApiError(500, str(exc)) from exc
        return {"message": "Клуб удален"}

    def list_computers(self) -> list[dict[str, Any]] | None:
        """Return every computer; ``None`` when there are none."""
        computers = []
        for snap in self.store.collection("computers").all():
            computer = _decode(Computer, _COMPUTER_FIELDS, snap.data, strict=False)
            computer.id = snap.id
            computers.append(computer.to_dict())
        return computers or None

    def club_computers(self, club_id: str) -> list[dict[str, Any]]:
        """Return the computers of one club, skipping records that do not decode."""
        computers = []
        for snap in self.store.collection("computers").where(CLUB_ID, "==", club_id).get():
            try:
                computer = _decode(Computer, _COMPUTER_FIELDS, snap.data, strict=True)
            except ValueError:
                continue
            computer.id = snap.id
            computers.append(computer.to_dict())
        return computers

    def create_computers(self, club_id: str, payload: Any) -> dict[str, Any]:
        if payload is None:
            payload = []
        if not isinstance(payload, list):
            raise ApiError(400, "expected a JSON array of computers")
        computers = [_bind(Computer, item) for item in payload]
        batch = self.store.batch()
        collection = self.store.collection("computers")
        for computer in computers:
            computer.club_id = club_id
            batch.set(collection.new_document(), _computer_record(computer))
        try:
            batch.commit()
        except ValueError as exc:
            raise ApiError(500, str(exc)) from exc
        return {"message": f"Добавлено {len(computers)} компьютеров", "clubId": club_id}

    def create_booking(self, uid: str, payload: Any) -> dict[str, Any]:
        club_id, pc_number, start_time, hours = _bind_booking_request(payload)

        try:
            club_snap = self.store.collection("clubs").where(CLUB_ID, "==", club_id).first()
        except NotFoundError as exc:
            raise ApiError(404, "Клуб не найден") from exc
        try:
            price = _check_club_record(club_snap.data)
        except ValueError as exc:
            raise ApiError(500, str(exc)) from exc

        try:
            computer_snap = (
                self.store.collection("computers")
                .where(CLUB_ID, "==", club_id)
                .where("PCNumber", "==", pc_number)
                .first()
            )
        except NotFoundError as exc:
            raise ApiError(400, "Компьютер не найден") from exc
        available = computer_snap.data.get("IsAvailable", False)
        if available is None:
            available = False
        if not isinstance(available, bool):
            raise ApiError(500, "field 'IsAvailable' must be a boolean")
        if not available:
            raise ApiError(400, "Компьютер уже занят")

        now = self.clock()
        existing = (
            self.store.collection("bookings")
            .where(CLUB_ID, "==", club_id)
            .where("PCNumber", "==", pc_number)
            .where("Status", "==", "active")
            .where("EndTime", ">", now)
            .get()
        )
        if existing:
            raise ApiError(400, "Компьютер уже забронирован на это время")

        try:
            end_time = start_time + timedelta(hours=hours)
        except OverflowError as exc:
            raise ApiError(400, "booking time out of range") from exc
        record = {
            "ID": self.store.collection("bookings").new_document().id,
            "ClubID": club_id,
            "UserID": uid,
            "PCNumber": pc_number,
            "StartTime": start_time,
            "EndTime": end_time,
            "TotalPrice": price * hours,
            "Status": "active",
            "CreatedAt": now,
        }
        self.store.collection("bookings").document(record["ID"]).set(record)
        try:
            computer_snap.ref.update({"IsAvailable": False})
        except NotFoundError as exc:
            raise ApiError(500, str(exc)) from exc

        return {
            key: format_time(value) if isinstance(value, datetime) else value
            for key, value in record.items()
        }

    def user_bookings(self, uid: str) -> list[dict[str, Any]] | None:
        """Return the user's active future bookings by start time; ``None`` when none."""
        snaps = (
            self.store.collection("bookings")
            .where("user_id", "==", uid)
            .where("status", "==", "active")
            .where("end_time", ">", self.clock())
            .order_by("start_time")
            .get()
        )
        bookings = []
        for snap in snaps:
            booking = _decode(Booking, _BOOKING_FIELDS, snap.data, strict=False)
            booking.id = snap.id
            try:
                club_snap = self.store.collection("clubs").document(booking.club_id).get()
            except (NotFoundError, ValueError):
                pass
            else:
                club = _decode(ComputerClub, _CLUB_FIELDS, club_snap.data, strict=False)
                booking.club_name = club.name
            bookings.append(booking.to_dict())
        return bookings or None

    def cancel_booking(self, uid: str, booking_id: str) -> dict[str, Any]:
        try:
            ref = self.store.collection("bookings").document(booking_id)
            snap = ref.get()
        except (NotFoundError, ValueError) as exc:
            raise ApiError(404, "Бронирование не найдено") from exc
        booking = _decode(Booking, _BOOKING_FIELDS, snap.data, strict=False)

        if booking.user_id != uid:
            raise ApiError(403, "Нельзя отменить чужое бронирование")
        if booking.status != "active":
            raise ApiError(400, "Бронирование уже отменено или завершено")
        if booking.start_time - self.clock() < timedelta(hours=1):
            raise ApiError(400, "Можно отменить только за час до начала")

        try:
            ref.update({"status": "cancelled"})
        except NotFoundError as exc:
            raise ApiError(500, str(exc)) from exc

        computers = (
            self.store.collection("computers")
            .where("club_id", "==", booking.club_id)
            .where("number", "==", booking.pc_number)
            .limit(1)
            .get()
        )
        if computers:
            try:
                computers[0].ref.update({"is_available": True})
            except NotFoundError as exc:
                raise ApiError(500, "Ошибка при обновлении статуса компьютера") from exc

        return {"message": "Бронирование успешно отменено"}