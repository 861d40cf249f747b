# clubbooking

A small HTTP service for computer clubs, built on Flask. It lists clubs
and their computers, lets signed-in users book a computer for a number
of hours, shows their active bookings and lets them cancel a booking.
All data lives in an in-memory document store.

## Running the server

```
clubbooking --tokens tokens.json
```

Options:

- `--host` – address to listen on (default `0.0.0.0`)
- `--port` – port to listen on (default `8080`)
- `--tokens` – JSON file of accepted ID tokens

The token file is a JSON object mapping each token either to a user id,
or to an object with a string `uid` and an optional `claims` object:

```json
{
  "token": "user-1",
  "placeholder": {"uid": "user-2", "claims": {"role": "admin"}}
}
```

Without `--tokens` no token is accepted, so every route that needs
authentication answers `401`.

When a request carries an `Origin` header, responses allow any origin
with credentials; `OPTIONS` preflight requests are answered with `204`,
allowing the `GET`, `POST`, `PUT`, `DELETE` and `OPTIONS` methods and the
`Content-Type` and `Authorization` headers, cached for 12 hours.

## Routes

Open routes:

| Method | Path                    | What it does                                       |
|--------|-------------------------|----------------------------------------------------|
| GET    | `/clubs`                | all clubs (`null` when there are none)             |
| GET    | `/clubs/<id>`           | one club, `404` if it does not exist               |
| POST   | `/auth`                 | checks the bearer token, returns the uid           |
| GET    | `/computers`            | all computers (`null` when there are none)         |
| GET    | `/clubs/<id>/computers` | computers whose `ClubID` field is `<id>`           |

Routes that need `Authorization: Bearer token`:

| Method | Path                    | What it does                              |
|--------|-------------------------|-------------------------------------------|
| POST   | `/clubs`                | create a club (its `id` is required)      |
| PUT    | `/clubs/<id>`           | replace a club                            |
| DELETE | `/clubs/<id>`           | delete a club                             |
| POST   | `/clubs/<id>/computers` | add a JSON array of computers             |
| GET    | `/bookings`             | the caller's active, unfinished bookings  |
| POST   | `/bookings`             | book a computer                           |
| PUT    | `/bookings/<id>/cancel` | cancel one of the caller's bookings       |

A missing header, an empty token or a token the verifier rejects gives
`401`. Every failure has a JSON body `{"error": ...}`; a malformed JSON
body gives `400`.

### Booking a computer

`POST /bookings` takes a JSON body with `ClubID`, `PCNumber`,
`StartTime` (RFC 3339) and `Hours`. It looks up a club document whose
`ClubID` field matches and a computer document whose `ClubID` and
`PCNumber` fields match. The booking is refused when either is missing,
when the computer's `IsAvailable` is not true, or when the computer
already has an active booking whose end lies in the future. The total
price is the club's `PricePerHour` times the hours booked; the booking
is stored and the computer is marked unavailable. The response is the
stored booking, with times in RFC 3339.

### Cancelling

Only the owner of an active booking may cancel it, and only when at
least one hour remains before it starts. The booking's `status` becomes
`cancelled`, and the first computer whose `club_id` and `number` match
the booking has `is_available` set to true.

## Limitations

- Nothing is persisted: the store is in memory and is empty each time
  the server starts.
- The documents written by the HTTP routes do not use the same field
  names as the lookups of the other routes:
  - clubs from `POST /clubs` have no `ClubID` field, so `POST /bookings`
    cannot find them;
  - computers from `POST /clubs/<id>/computers` are stored with an empty
    `ClubID` and with `Number` rather than `PCNumber`;
  - bookings are written with capitalised fields (`UserID`, `Status`,
    `StartTime`, `EndTime`), while `GET /bookings` and cancelling read
    lower-case ones (`user_id`, `status`, `start_time`, `end_time`).

  To make these routes work together, put suitable documents into the
  store through `clubbooking.store` before serving.
- The role-based application (`create_role_app`) has no command of its
  own; it is available only from Python.

## Using it as a library

- `clubbooking.models` holds the `ComputerClub`, `Computer` and
  `Booking` dataclasses, each with `to_dict` and `from_dict`, plus
  `parse_time` and `format_time` for RFC 3339 timestamps.
- `clubbooking.store` is a thread-safe in-memory document store:
  `DocumentStore` (`collection`, `batch`, `new_id`), `Collection`
  (`document`, `new_document`, `where`, `all`), `Query` (`where`,
  `order_by`, `limit`, `get`, `first`), `DocumentRef` (`get`, `set`
  with optional merge, `update`, `delete`), `Snapshot` and `WriteBatch`
  (`set`, `commit`). A missing document raises `NotFoundError`.
- `clubbooking.auth` checks bearer tokens: `extract_bearer_token`,
  `authenticate`, the abstract `TokenVerifier`, and
  `StaticTokenVerifier`, whose `add(token, uid, claims)` registers a
  token it will accept. Failures raise `AuthError`, which carries an
  HTTP status.
- `clubbooking.handlers.ClubService(store, clock=None)` carries the
  club, computer and booking operations; failures raise `ApiError` with
  an HTTP status and message.
- `clubbooking.app.create_app(service, verifier)` builds the Flask
  application with the routes above; `clubbooking.app.main` is the
  `clubbooking` command.
- `clubbooking.roles` adds role-based access:
  - `generate_jwt(username, role, key, now)` and `decode_jwt(token, key)`
    for one-hour HS256 tokens (the key defaults to `b"secret"`);
  - `RoleRegistry(store)` with `get_user_role` and `set_user_role`,
    keeping roles in the `users` collection;
  - `create_role_app(service, verifier, roles, key)`, an application
    with the club routes, where writing clubs needs a token whose `role`
    claim is `admin`, `POST /auth` returns a signed token under `jwt`,
    and `POST /setRole` (body `{"uid": ..., "role": ...}`) needs a user
    whose stored role is `admin`.

```python
from clubbooking.app import create_app
from clubbooking.auth import StaticTokenVerifier
from clubbooking.handlers import ClubService
from clubbooking.store import DocumentStore

verifier = StaticTokenVerifier()
verifier.add("token", "user-1")
app = create_app(ClubService(DocumentStore()), verifier)
```

## Tests

The tests use pytest and come with the `test` extra.