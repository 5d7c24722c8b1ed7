import itertools
from typing import AsyncGenerator, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hms_client.core.notices import NoticeCenter
from hms_client.infrastructure.http import ApiClient
from hms_client.infrastructure.sse import RetryPolicy


class InjectedFailure(Exception):
    def __init__(self, status_code: int, body: dict):
        self.status_code = status_code
        self.body = body


def _not_found(label: str) -> JSONResponse:
    return JSONResponse({"error": f"{label} not found"}, status_code=404)


class FakeBackend:
    """In-memory stand-in for the hospital REST backend.

    Tables are plain dicts of camelCase JSON rows keyed by id. Every request
    is recorded in ``calls`` as ``(method, path, query, body)``.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, dict]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, tuple] = {}
        self.next_ids: Dict[str, str] = {}
        self.analytics: Dict[str, list] = {}
        self.lab_analytics: dict = {}
        self._counter = itertools.count(100)
        self.app = self._build()

    # helpers

    def table(self, name: str) -> Dict[str, dict]:
        return self.tables.setdefault(name, {})

    def seed(self, name: str, *rows: dict) -> None:
        for row in rows:
            self.table(name)[row["id"]] = dict(row)

    def rows(self, name: str) -> List[dict]:
        return list(self.table(name).values())

    def fail(self, method: str, path: str, status_code: int = 500, body: Optional[dict] = None) -> None:
        self.failures[f"{method} {path}"] = (status_code, body or {"error": "Internal server error"})

    def calls_to(self, method: str, path: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method and c[1] == path]

    def _new_id(self, name: str, prefix: str) -> str:
        return self.next_ids.pop(name, None) or f"{prefix}{next(self._counter)}"

    async def _record(self, request: Request) -> Optional[dict]:
        raw = await request.body()
        body = await request.json() if raw else None
        self.calls.append((request.method, request.url.path, dict(request.query_params), body))
        failure = self.failures.pop(f"{request.method} {request.url.path}", None)
        if failure is not None:
            raise InjectedFailure(*failure)
        return body

    def _create(self, name: str, prefix: str, body: dict, **defaults) -> dict:
        row = {**defaults, **body, "id": self._new_id(name, prefix)}
        self.table(name)[row["id"]] = row
        return row

    def _merge(self, name: str, id: str, body: dict) -> Optional[dict]:
        row = self.table(name).get(id)
        if row is None:
            return None
        row.update({k: v for k, v in body.items() if k != "id"})
        return row

    @staticmethod
    def _filtered(rows: List[dict], request: Request, *fields: str) -> List[dict]:
        for field in fields:
            wanted = request.query_params.get(field)
            if wanted:
                allowed = set(wanted.split(","))
                rows = [r for r in rows if str(r.get(field)) in allowed]
        return rows

    @staticmethod
    def _page(rows: List[dict], request: Request, total_key: str = "total", pages_key: str = "pages"):
        page = int(request.query_params.get("page", 1))
        limit = int(request.query_params.get("limit", 10))
        pages = (len(rows) + limit - 1) // limit
        start = (page - 1) * limit
        return rows[start:start + limit], {"page": page, "limit": limit, total_key: len(rows), pages_key: pages}

    # routes

    def _build(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.exception_handler(InjectedFailure)
        async def injected(request: Request, exc: InjectedFailure):
            return JSONResponse(exc.body, status_code=exc.status_code)

        # beds: billing, services, allocation and analytics before /api/beds/{bed_id}

        @app.get("/api/beds/billing")
        async def list_bed_billing(request: Request):
            await backend._record(request)
            return backend.rows("bed_billing")

        @app.put("/api/beds/billing/{billing_id}/adjust")
        async def adjust_billing(billing_id: str, request: Request):
            body = await backend._record(request)
            row = backend.table("bed_billing").get(billing_id)
            if row is None:
                return _not_found("Billing")
            row["additionalCharges"] = body["additionalCharges"]
            row["discounts"] = body["discounts"]
            row["totalAmount"] = row["baseRate"] * row["totalDays"] + body["additionalCharges"] - body["discounts"]
            return row

        @app.post("/api/beds/billing/{billing_id}/invoice")
        async def invoice_billing(billing_id: str, request: Request):
            await backend._record(request)
            row = backend.table("bed_billing").get(billing_id)
            if row is None:
                return _not_found("Billing")
            row["billingStatus"] = "INVOICED"
            return row

        for name, prefix in (("pricing", "pr"), ("packages", "pk")):
            def register(name=name, prefix=prefix):
                @app.get(f"/api/beds/billing/{name}", name=f"list_{name}")
                async def list_rows(request: Request):
                    await backend._record(request)
                    return backend.rows(name)

                @app.post(f"/api/beds/billing/{name}", name=f"create_{name}", status_code=201)
                async def create_row(request: Request):
                    body = await backend._record(request)
                    return backend._create(name, prefix, body)

            register()

        @app.get("/api/beds/services")
        async def list_services(request: Request):
            await backend._record(request)
            return backend.rows("services")

        @app.post("/api/beds/services", status_code=201)
        async def create_service(request: Request):
            body = await backend._record(request)
            return backend._create("services", "rs", body, status="PENDING")

        @app.put("/api/beds/services/{request_id}/assign")
        async def assign_service(request_id: str, request: Request):
            body = await backend._record(request)
            row = backend._merge("services", request_id, {"assignedTo": body["assignedTo"], "status": "ASSIGNED"})
            return row if row is not None else _not_found("Service request")

        @app.put("/api/beds/services/{request_id}/complete")
        async def complete_service(request_id: str, request: Request):
            body = await backend._record(request)
            row = backend._merge("services", request_id, {**body, "status": "COMPLETED"})
            return row if row is not None else _not_found("Service request")

        for name, prefix, status in (
            ("allocation", "al", "CURRENT"),
            ("transfers", "tr", "REQUESTED"),
            ("reservations", "rv", "REQUESTED"),
        ):
            path = "/api/beds/allocation" if name == "allocation" else f"/api/beds/allocation/{name}"

            def register(name=name, prefix=prefix, status=status, path=path):
                @app.get(path, name=f"list_{name}")
                async def list_rows(request: Request):
                    await backend._record(request)
                    return backend.rows(name)

                @app.post(path, name=f"create_{name}", status_code=201)
                async def create_row(request: Request):
                    body = await backend._record(request)
                    bed = backend.table("beds").get(body.get("bedId"))
                    if name == "allocation" and bed is not None:
                        bed["status"] = "OCCUPIED"
                    if name == "reservations" and bed is not None:
                        bed["status"] = "RESERVED"
                    return backend._create(name, prefix, body, status=status)

            register()

        @app.get("/api/beds/analytics/{report}")
        async def bed_analytics(report: str, request: Request):
            await backend._record(request)
            return backend.analytics.get(report, [])

        @app.get("/api/beds")
        async def list_beds(request: Request):
            await backend._record(request)
            return backend._filtered(backend.rows("beds"), request, "status")

        @app.post("/api/beds", status_code=201)
        async def create_bed(request: Request):
            body = await backend._record(request)
            return backend._create("beds", "b", body, status="AVAILABLE")

        @app.put("/api/beds/{bed_id}")
        async def update_bed(bed_id: str, request: Request):
            body = await backend._record(request)
            row = backend._merge("beds", bed_id, body)
            return row if row is not None else _not_found("Bed")

        @app.delete("/api/beds/{bed_id}")
        async def delete_bed(bed_id: str, request: Request):
            await backend._record(request)
            if backend.table("beds").pop(bed_id, None) is None:
                return _not_found("Bed")
            return {"message": "Bed deleted successfully"}

        @app.post("/api/beds/{bed_id}/maintenance", status_code=201)
        async def schedule_maintenance(bed_id: str, request: Request):
            await backend._record(request)
            row = backend._merge("beds", bed_id, {"status": "UNDER_MAINTENANCE"})
            if row is None:
                return _not_found("Bed")
            return {"message": "Maintenance scheduled"}

        # laboratory: collection routes with ids in the body or the query

        for name, key, prefix, status in (
            ("catalog", "tests", "t", None),
            ("requests", "tests", "lr", "REQUESTED"),
            ("samples", "samples", "s", "COLLECTED"),
            ("billing", "billings", "lb", None),
        ):
            def register(name=name, key=key, prefix=prefix, status=status):
                table = f"lab_{name}"

                @app.get(f"/api/lab/{name}", name=f"list_lab_{name}")
                async def list_rows(request: Request):
                    await backend._record(request)
                    rows = backend._filtered(backend.rows(table), request, "status", "category")
                    search = request.query_params.get("search")
                    if search:
                        rows = [r for r in rows if search.lower() in r.get("name", "").lower()]
                    test_ids = request.query_params.get("testIds")
                    if test_ids:
                        rows = [r for r in rows if r.get("testId") in test_ids.split(",")]
                    page, pagination = backend._page(rows, request)
                    return {key: page, "pagination": pagination}

                @app.post(f"/api/lab/{name}", name=f"create_lab_{name}", status_code=201)
                async def create_row(request: Request):
                    body = await backend._record(request)
                    defaults = {"status": status} if status else {}
                    return backend._create(table, prefix, body, **defaults)

                @app.put(f"/api/lab/{name}", name=f"update_lab_{name}")
                async def update_row(request: Request):
                    body = await backend._record(request)
                    row = backend._merge(table, body.get("id"), body)
                    return row if row is not None else _not_found("Record")

                @app.delete(f"/api/lab/{name}", name=f"delete_lab_{name}")
                async def delete_row(request: Request):
                    await backend._record(request)
                    if backend.table(table).pop(request.query_params.get("id"), None) is None:
                        return _not_found("Record")
                    return {"message": "Deleted successfully"}

            register()

        @app.post("/api/lab/results-sse", status_code=201)
        async def create_result(request: Request):
            body = await backend._record(request)
            return backend._create("lab_results", "r", body)

        @app.get("/api/lab/notifications")
        async def list_notifications(request: Request):
            await backend._record(request)
            return {"notifications": backend.rows("lab_notifications")}

        @app.put("/api/lab/notifications/{notification_id}/read")
        async def read_notification(notification_id: str, request: Request):
            await backend._record(request)
            row = backend._merge("lab_notifications", notification_id, {"isRead": True})
            return row if row is not None else _not_found("Notification")

        @app.delete("/api/lab/notifications/{notification_id}")
        async def delete_notification(notification_id: str, request: Request):
            await backend._record(request)
            if backend.table("lab_notifications").pop(notification_id, None) is None:
                return _not_found("Notification")
            return {"message": "Notification deleted"}

        @app.get("/api/lab/analytics")
        async def lab_analytics(request: Request):
            await backend._record(request)
            return backend.lab_analytics

        # doctors: success envelopes

        @app.get("/api/doctors/co-consultations")
        async def list_co_consultations(request: Request):
            await backend._record(request)
            doctor_id = request.query_params.get("doctorId")
            if not doctor_id:
                return JSONResponse({"success": False, "error": "Doctor ID is required"}, status_code=400)
            rows = [
                r for r in backend.rows("co_consultations")
                if doctor_id in (r["primaryDoctorId"], r["secondaryDoctorId"])
            ]
            rows = backend._filtered(rows, request, "status")
            page, pagination = backend._page(rows, request)
            return {"success": True, "data": {"coConsultations": page, "pagination": pagination}}

        @app.post("/api/doctors/co-consultations")
        async def create_co_consultation(request: Request):
            body = await backend._record(request)
            if body["primaryDoctorId"] == body["secondaryDoctorId"]:
                return JSONResponse({"success": False, "error": "Doctors must differ"}, status_code=400)
            row = backend._create("co_consultations", "cc", body, status="PENDING")
            return {"success": True, "data": {"coConsultation": row}}

        @app.put("/api/doctors/co-consultations")
        async def update_co_consultation(request: Request):
            body = await backend._record(request)
            row = backend._merge("co_consultations", body.get("id"), body)
            if row is None:
                return JSONResponse({"success": False, "error": "Co-consultation not found"}, status_code=404)
            return {"success": True, "data": {"coConsultation": row}}

        @app.get("/api/doctors/billing/distribution")
        async def get_distribution(request: Request):
            await backend._record(request)
            cc_id = request.query_params.get("coConsultationId")
            consultation = backend.table("co_consultations").get(cc_id)
            distribution = backend.table("distributions").get(cc_id)
            if consultation is None or distribution is None:
                return JSONResponse({"success": False, "error": "Not found"}, status_code=404)
            return {
                "success": True,
                "data": {
                    "billingDistribution": distribution,
                    "primaryDoctor": {"id": consultation["primaryDoctorId"]},
                    "secondaryDoctor": {"id": consultation["secondaryDoctorId"]},
                },
            }

        @app.post("/api/doctors/billing/distribution")
        async def save_distribution(request: Request):
            body = await backend._record(request)
            row = backend.table("distributions").get(body["coConsultationId"])
            if row is None:
                return JSONResponse({"success": False, "error": "Not found"}, status_code=404)
            if body["primaryDoctorPercentage"] + body["secondaryDoctorPercentage"] != 100:
                return JSONResponse({"success": False, "error": "Percentages must sum to 100"}, status_code=400)
            total = row["totalAmount"]
            row.update(
                primaryDoctorPercentage=body["primaryDoctorPercentage"],
                secondaryDoctorPercentage=body["secondaryDoctorPercentage"],
                primaryDoctorAmount=total * body["primaryDoctorPercentage"] / 100,
                secondaryDoctorAmount=total * body["secondaryDoctorPercentage"] / 100,
                isCustom=body.get("isCustom", False),
            )
            return {"success": True, "data": {"billingDistribution": row}}

        @app.get("/api/doctors/shared-notes")
        async def list_notes(request: Request):
            await backend._record(request)
            cc_id = request.query_params.get("coConsultationId")
            rows = [r for r in backend.rows("shared_notes") if r.get("coConsultationId") == cc_id]
            return {"success": True, "data": {"sharedNotes": rows}}

        @app.post("/api/doctors/shared-notes")
        async def create_note(request: Request):
            body = await backend._record(request)
            row = backend._create("shared_notes", "n", body, doctorId="d1")
            return {"success": True, "data": {"sharedNote": row}}

        @app.put("/api/doctors/shared-notes")
        async def update_note(request: Request):
            body = await backend._record(request)
            row = backend._merge("shared_notes", body.get("noteId"), {"content": body["content"]})
            if row is None:
                return JSONResponse({"success": False, "error": "Note not found"}, status_code=404)
            return {"success": True, "data": {"sharedNote": row}}

        @app.delete("/api/doctors/shared-notes")
        async def delete_note(request: Request):
            await backend._record(request)
            if backend.table("shared_notes").pop(request.query_params.get("noteId"), None) is None:
                return JSONResponse({"success": False, "error": "Note not found"}, status_code=404)
            return {"success": True, "data": {}}

        # radiology

        @app.get("/api/radiology/requests")
        async def list_radiology(request: Request):
            await backend._record(request)
            rows = backend._filtered(backend.rows("radiology"), request, "status", "patientId")
            page, pagination = backend._page(rows, request, "totalCount", "totalPages")
            return {"requests": page, "pagination": pagination}

        @app.post("/api/radiology/requests", status_code=201)
        async def create_radiology(request: Request):
            body = await backend._record(request)
            return backend._create("radiology", "rad", body, status="REQUESTED")

        @app.put("/api/radiology/requests")
        async def update_radiology(request: Request):
            body = await backend._record(request)
            row = backend._merge("radiology", body.get("id"), body)
            return row if row is not None else _not_found("Request")

        @app.patch("/api/radiology/requests")
        async def patch_radiology(request: Request):
            body = await backend._record(request)
            row = backend._merge("radiology", body.get("id"), {"status": body["status"]})
            return row if row is not None else _not_found("Request")

        @app.delete("/api/radiology/requests")
        async def cancel_radiology(request: Request):
            await backend._record(request)
            row = backend._merge("radiology", request.query_params.get("id"), {"status": "CANCELLED"})
            if row is None:
                return _not_found("Request")
            return {"message": "Request cancelled successfully"}

        return app


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def api(backend: FakeBackend) -> AsyncGenerator[ApiClient, None]:
    """API client wired to the in-memory backend."""
    transport = httpx.ASGITransport(app=backend.app)
    async with ApiClient(base_url="http://test", transport=transport) as client:
        yield client


@pytest.fixture
def mock_api() -> Callable[[Callable[[httpx.Request], httpx.Response]], ApiClient]:
    """Build an unconnected client whose every request goes to ``handler``."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> ApiClient:
        return ApiClient(base_url="http://test", transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def notices() -> NoticeCenter:
    return NoticeCenter(auto_hide_seconds=0)


@pytest.fixture
def no_retry() -> RetryPolicy:
    return RetryPolicy(initial_delay=0, max_attempts=0)


@pytest.fixture
def sample_bed() -> dict:
    return {
        "id": "b1",
        "bedNumber": "101A",
        "roomId": "r1",
        "roomNumber": "101",
        "bedType": "STANDARD",
        "status": "AVAILABLE",
        "floor": "1",
        "wing": "East",
        "features": ["oxygen"],
    }
