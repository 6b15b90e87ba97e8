"""OkanAssist REST API client — transactions, reminders and user settings.

Every call sends the session's access token as a Bearer header. HTTP and
transport failures are mapped onto the BackendError hierarchy so the
gateway can turn them into Result failures:

    401 / 403        -> AuthRejectedError
    404              -> NotFoundError
    400 / 422        -> RejectedInputError
    timeout          -> RequestTimeoutError
    connection error -> NetworkError
    anything else    -> BackendError

List endpoints may answer with a bare JSON array or an object wrapping the
array under the collection name (`{"transactions": [...]}`). A 2xx body
that is not JSON, or rows missing required fields, raise BackendError too.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, TypeVar

import httpx

from okanassist.core.errors import (
    AuthRejectedError,
    BackendError,
    NetworkError,
    NotFoundError,
    RejectedInputError,
    RequestTimeoutError,
)
from okanassist.data.models import (
    ActivitySummary,
    CategoryCatalog,
    Priority,
    Reminder,
    ReminderCreate,
    ReminderSummary,
    ReminderUpdate,
    Session,
    Transaction,
    TransactionCreate,
    TransactionSummary,
    TransactionType,
    TransactionUpdate,
    UserSettings,
)

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 20

T = TypeVar("T")

# What a malformed row raises out of the parsers below.
_MALFORMED = (KeyError, TypeError, ValueError, ArithmeticError, AttributeError)


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    # Python < 3.11 fromisoformat does not accept a trailing "Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_transaction(row: dict) -> Transaction:
    return Transaction(
        id=str(row["id"]),
        amount=Decimal(str(row["amount"])),
        description=row.get("description", ""),
        category=row.get("category") or "Other",
        transaction_type=TransactionType(row.get("transaction_type", "expense")),
        merchant=row.get("merchant"),
        date=date.fromisoformat(str(row["date"])[:10]),
        user_id=str(row.get("user_id", "")),
    )


def parse_reminder(row: dict) -> Reminder:
    return Reminder(
        id=str(row["id"]),
        title=row.get("title", ""),
        description=row.get("description"),
        due_datetime=_parse_datetime(row.get("due_datetime")),
        priority=Priority(row.get("priority") or "medium"),
        is_completed=bool(row.get("is_completed", False)),
        is_recurring=bool(row.get("is_recurring", False)),
        completed_at=_parse_datetime(row.get("completed_at")),
        user_id=str(row.get("user_id", "")),
    )


def parse_transaction_summary(data: dict, days: int) -> TransactionSummary:
    return TransactionSummary(
        period_days=int(data.get("period_days", days)),
        total_expenses=Decimal(str(data.get("total_expenses", 0))),
        total_income=Decimal(str(data.get("total_income", 0))),
        expense_count=int(data.get("expense_count", 0)),
        income_count=int(data.get("income_count", 0)),
        category_breakdown={
            name: Decimal(str(amount))
            for name, amount in (data.get("category_breakdown") or {}).items()
        },
    )


def parse_reminder_summary(data: dict, days: int) -> ReminderSummary:
    return ReminderSummary(
        period_days=int(data.get("period_days", days)),
        total=int(data.get("total", 0)),
        completed=int(data.get("completed", 0)),
        pending=int(data.get("pending", 0)),
        overdue=int(data.get("overdue", 0)),
        by_priority={k: int(v) for k, v in (data.get("by_priority") or {}).items()},
    )


def parse_activity_summary(data: dict, days: int) -> ActivitySummary:
    return ActivitySummary(
        period_days=int(data.get("period_days", days)),
        transactions=parse_transaction_summary(data.get("transactions") or {}, days),
        reminders=parse_reminder_summary(data.get("reminders") or {}, days),
    )


def parse_categories(data: dict) -> CategoryCatalog:
    return CategoryCatalog(
        expense=[str(name) for name in data.get("expense") or []],
        income=[str(name) for name in data.get("income") or []],
    )


def _parse(parser: Callable[..., T], payload: Any, *args: Any) -> T:
    try:
        return parser(payload, *args)
    except _MALFORMED as exc:
        logger.error("Malformed payload for %s: %r", parser.__name__, exc)
        raise BackendError(f"Malformed server response: {exc!r}") from exc


def _unwrap_list(data: Any, collection: str) -> list[dict]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if data.get("success") is False:
            raise BackendError(data.get("message") or f"Failed to load {collection}")
        rows = data.get(collection) or data.get("data") or []
        if not isinstance(rows, list):
            raise BackendError(f"Unexpected {collection} payload: {type(rows).__name__}")
        return rows
    raise BackendError(f"Unexpected {collection} payload: {type(data).__name__}")


def _unwrap_object(data: Any, key: str) -> dict:
    if not isinstance(data, dict):
        raise BackendError(f"Unexpected {key} payload: {type(data).__name__}")
    if data.get("success") is False:
        raise BackendError(data.get("message") or f"Request for {key} failed")
    inner = data.get(key) or data.get("data")
    return inner if isinstance(inner, dict) else data


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RestBackend:
    """BackendPort over the OkanAssist HTTP API."""

    def __init__(self, base_url: str, timeout: float = _TIMEOUT_SECONDS) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _request(
        self,
        method: str,
        path: str,
        session: Session,
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {session.access_token}"},
                )
        except httpx.TimeoutException as exc:
            logger.error("%s %s timed out", method, path)
            raise RequestTimeoutError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Could not reach server: {exc}") from exc

        status = resp.status_code
        if status in (401, 403):
            raise AuthRejectedError(_error_detail(resp))
        if status == 404:
            raise NotFoundError(_error_detail(resp))
        if status in (400, 422):
            raise RejectedInputError(_error_detail(resp))
        if status >= 400:
            logger.error("%s %s returned %d", method, path, status)
            raise BackendError(_error_detail(resp))

        if status == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            logger.error("%s %s returned a non-JSON body", method, path)
            raise BackendError(f"{method} {path} returned a non-JSON body") from exc

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def list_transactions(
        self,
        session: Session,
        days: int,
        transaction_type: TransactionType | None = None,
    ) -> list[Transaction]:
        params: dict[str, Any] = {"days": days}
        if transaction_type is not None:
            params["transaction_type"] = transaction_type.value
        data = await self._request("GET", "/api/transactions", session, params=params)
        return [_parse(parse_transaction, row) for row in _unwrap_list(data, "transactions")]

    async def transaction_summary(self, session: Session, days: int) -> TransactionSummary:
        data = await self._request(
            "GET", "/api/transactions/summary", session, params={"days": days},
        )
        return _parse(parse_transaction_summary, _unwrap_object(data, "summary"), days)

    async def create_transaction(
        self, session: Session, payload: TransactionCreate,
    ) -> Transaction:
        data = await self._request(
            "POST", "/api/transactions", session, json=payload.model_dump(mode="json"),
        )
        return _parse(parse_transaction, _unwrap_object(data, "transaction"))

    async def update_transaction(
        self, session: Session, transaction_id: str, payload: TransactionUpdate,
    ) -> Transaction:
        data = await self._request(
            "PUT",
            f"/api/transactions/{transaction_id}",
            session,
            json=payload.model_dump(mode="json", exclude_unset=True),
        )
        return _parse(parse_transaction, _unwrap_object(data, "transaction"))

    async def delete_transaction(self, session: Session, transaction_id: str) -> None:
        data = await self._request("DELETE", f"/api/transactions/{transaction_id}", session)
        if isinstance(data, dict) and data.get("success") is False:
            raise BackendError(data.get("message") or "Delete failed")

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def list_reminders(
        self, session: Session, include_completed: bool, limit: int,
    ) -> list[Reminder]:
        data = await self._request(
            "GET",
            "/api/reminders",
            session,
            params={"include_completed": str(include_completed).lower(), "limit": limit},
        )
        return [_parse(parse_reminder, row) for row in _unwrap_list(data, "reminders")]

    async def list_due_reminders(self, session: Session, hours_ahead: int) -> list[Reminder]:
        data = await self._request(
            "GET", "/api/reminders/due", session, params={"hours_ahead": hours_ahead},
        )
        return [_parse(parse_reminder, row) for row in _unwrap_list(data, "reminders")]

    async def reminder_summary(self, session: Session, days: int) -> ReminderSummary:
        data = await self._request(
            "GET", "/api/reminders/summary", session, params={"days": days},
        )
        return _parse(parse_reminder_summary, _unwrap_object(data, "summary"), days)

    async def create_reminder(self, session: Session, payload: ReminderCreate) -> Reminder:
        data = await self._request(
            "POST", "/api/reminders", session, json=payload.model_dump(mode="json"),
        )
        return _parse(parse_reminder, _unwrap_object(data, "reminder"))

    async def update_reminder(
        self, session: Session, reminder_id: str, payload: ReminderUpdate,
    ) -> Reminder:
        data = await self._request(
            "PUT",
            f"/api/reminders/{reminder_id}",
            session,
            json=payload.model_dump(mode="json", exclude_unset=True),
        )
        return _parse(parse_reminder, _unwrap_object(data, "reminder"))

    async def delete_reminder(self, session: Session, reminder_id: str) -> None:
        data = await self._request("DELETE", f"/api/reminders/{reminder_id}", session)
        if isinstance(data, dict) and data.get("success") is False:
            raise BackendError(data.get("message") or "Delete failed")

    async def complete_reminder(self, session: Session, reminder_id: str) -> Reminder:
        data = await self._request("PUT", f"/api/reminders/{reminder_id}/complete", session)
        return _parse(parse_reminder, _unwrap_object(data, "reminder"))

    # ------------------------------------------------------------------
    # Activity and catalog
    # ------------------------------------------------------------------

    async def activity_summary(self, session: Session, days: int) -> ActivitySummary:
        data = await self._request(
            "GET", "/api/activity/summary", session, params={"days": days},
        )
        return _parse(parse_activity_summary, _unwrap_object(data, "summary"), days)

    async def list_categories(self, session: Session) -> CategoryCatalog:
        data = await self._request("GET", "/api/categories", session)
        if not data:
            return CategoryCatalog()
        return _parse(parse_categories, _unwrap_object(data, "categories"))

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def get_user_settings(self, session: Session) -> UserSettings | None:
        try:
            data = await self._request("GET", "/api/user/settings", session)
        except NotFoundError:
            return None
        if not data:
            return None
        row = _unwrap_object(data, "settings")
        return UserSettings(
            name=row.get("name", ""),
            currency=row.get("currency", "USD"),
            language=row.get("language", "en"),
            timezone=row.get("timezone", "UTC"),
        )

    async def update_user_settings(
        self, session: Session, user_settings: UserSettings,
    ) -> UserSettings:
        body = {
            "name": user_settings.name,
            "currency": user_settings.currency,
            "language": user_settings.language,
            "timezone": user_settings.timezone,
        }
        data = await self._request("PUT", "/api/user/settings", session, json=body)
        if not data:
            return user_settings
        row = _unwrap_object(data, "settings")
        return UserSettings(
            name=row.get("name", user_settings.name),
            currency=row.get("currency", user_settings.currency),
            language=row.get("language", user_settings.language),
            timezone=row.get("timezone", user_settings.timezone),
        )
