"""
Tests for the HTTP API.

Each test builds a fresh app over fresh services with a frozen clock.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from api.main import create_app


REGISTRATION = {
    "request_type": "registration",
    "submitted_data": {"name": "Asha Verma", "address": "12 MG Road", "age": 34},
}


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def submit(client, **overrides):
    response = client.post("/api/voter/request", json={**REGISTRATION, **overrides})
    assert response.status_code == 200, response.text
    return response.json()["request"]


# =============================================================
# TEST: Health
# =============================================================

def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# =============================================================
# TEST: Voter endpoints
# =============================================================

class TestVoterEndpoints:

    def test_submit_scores_request(self, client):
        request = submit(client)

        assert request["status"] == "Pending"
        assert request["risk_level"] == "Normal"
        assert request["ip_address"] == "testclient"

    def test_invalid_type_is_400(self, client):
        response = client.post("/api/voter/request", json={**REGISTRATION, "request_type": "renewal"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_missing_address_is_400(self, client):
        body = {**REGISTRATION, "submitted_data": {"name": "Asha Verma"}}

        response = client.post("/api/voter/request", json=body)

        assert response.status_code == 400
        assert response.json()["details"]["context"]["fields"] == ["address"]

    def test_track_status(self, client):
        request = submit(client, epic_id="XYZ0000001")

        found = client.post("/api/voter/track-status", json={"epic_id": "XYZ0000001"})
        missing = client.post("/api/voter/track-status", json={"request_id": "nope"})

        assert found.json()["request"]["request_id"] == request["request_id"]
        assert missing.status_code == 404

    def test_unknown_epic_is_404(self, client):
        assert client.get("/api/voter/epic/NOPE000000").status_code == 404

    def test_velocity_counts_connecting_client(self, client):
        # A body-supplied address is not a field of the request and is ignored
        requests = [
            submit(client, ip_address=f"10.0.0.{n}") for n in range(15)
        ]

        rule_ids = [f["rule_id"] for f in requests[-1]["flags"]]
        assert rule_ids == ["BOT_VELOCITY_HIGH"]
        assert requests[-1]["ip_address"] == "testclient"

    def test_non_finite_age_is_ignored(self, client):
        response = client.post(
            "/api/voter/request",
            content='{"request_type": "registration", '
                    '"submitted_data": {"name": "A", "address": "1 Lane", "age": NaN}}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        request = response.json()["request"]
        assert request["flags"] == []
        assert request["submitted_data"]["age"] is None


# =============================================================
# TEST: Authority endpoints
# =============================================================

class TestAuthorityEndpoints:

    def test_status_change_and_queue(self, client):
        request = submit(client)

        response = client.post(
            f"/api/authority/voter-request/{request['request_id']}/status",
            json={"status": "On Hold", "updated_by": "ERO-7"},
        )

        data = response.json()
        assert data["request"]["status"] == "On Hold"
        assert data["queue"] == {"total": 0, "high_risk": 0}

    def test_approve_registration_then_lookup(self, client):
        request = submit(client)

        approved = client.post(
            f"/api/authority/voter-request/{request['request_id']}/approve",
            json={"approved_by": "ERO-7"},
        ).json()["request"]
        voter = client.get(f"/api/voter/epic/{approved['epic_id']}")

        assert approved["status"] == "Approved"
        assert voter.status_code == 200
        assert voter.json()["voter"]["name"] == "Asha Verma"

    def test_changing_finalized_request_is_400(self, client):
        request = submit(client)
        url = f"/api/authority/voter-request/{request['request_id']}/status"
        client.post(url, json={"status": "Rejected"})

        assert client.post(url, json={"status": "Approved"}).status_code == 400

    def test_list_filtered(self, client):
        submit(client)
        submit(client, request_type="transfer", epic_id="XYZ0000001")

        response = client.get("/api/authority/voter-requests", params={"request_type": "transfer"})
        bad = client.get("/api/authority/voter-requests", params={"risk_level": "Severe"})

        assert [r["request_type"] for r in response.json()["requests"]] == ["transfer"]
        assert bad.status_code == 400

    def test_flag_resolution(self, client, services, make_record):
        services.registry.seed_records([make_record("V-1", "ABC1234567")])
        request = submit(client, epic_id="ABC1234567")
        flag_id = request["flags"][0]["flag_id"]

        listed = client.get("/api/authority/flags", params={"resolved": "false"}).json()["flags"]
        no_resolver = client.post(f"/api/authority/flag/{flag_id}/resolve", json={})
        resolved = client.post(
            f"/api/authority/flag/{flag_id}/resolve", json={"resolved_by": "ERO-7"}
        ).json()["flag"]
        unknown = client.post("/api/authority/flag/missing/resolve", json={"resolved_by": "ERO-7"})

        assert [f["flag_id"] for f in listed] == [flag_id]
        assert no_resolver.status_code == 400
        assert resolved["resolved"] is True
        assert resolved["resolved_by"] == "ERO-7"
        assert unknown.status_code == 404

    def test_stats_and_events(self, client):
        submit(client)

        stats = client.get("/api/authority/stats").json()["stats"]
        events = client.get("/api/authority/events", params={"limit": 5}).json()["events"]

        assert stats["pending_requests"] == 1
        assert stats["voters_registered"] == 0
        assert [e["event_type"] for e in events] == ["new_request_scored"]

    def test_underage_flag_is_listed_and_resolvable(self, client):
        request = submit(client, submitted_data={"name": "Kid", "address": "3 Park Street", "age": 16})
        flag_id = request["flags"][0]["flag_id"]

        listed = client.get("/api/authority/flags").json()["flags"]
        stats = client.get("/api/authority/stats").json()["stats"]
        resolved = client.post(
            f"/api/authority/flag/{flag_id}/resolve", json={"resolved_by": "ERO-7"}
        )

        assert [f["rule_id"] for f in listed] == ["UNDERAGE_APPLICANT"]
        assert stats["total_flags"] == 1
        assert resolved.status_code == 200


# =============================================================
# TEST: Audit endpoints
# =============================================================

class TestAuditEndpoints:

    def form17a(self, client, booth_id, *epics):
        records = [{"epic_id": e, "serial_number": str(n + 1)} for n, e in enumerate(epics)]
        return client.post("/api/audit/form17a/upload", json={"booth_id": booth_id, "records": records})

    def test_form17a_upload_and_listing(self, client):
        first = self.form17a(client, "A", "E1", "E2").json()
        second = self.form17a(client, "B", "E1").json()

        assert first["record_count"] == 2
        assert first["booth_risk"]["risk_level"] == "Normal"
        assert second["flags"][0]["rule_id"] == "CROSS_BOOTH_DUPLICATE"
        assert second["booth_risk"]["risk_level"] == "High Risk"

        records = client.get("/api/audit/form17a/A").json()["records"]
        assert len(records) == 2

    def test_malformed_form17a_is_400(self, client):
        response = client.post(
            "/api/audit/form17a/upload",
            json={"booth_id": "A", "records": [{"epic_id": "E1"}]},
        )
        assert response.status_code == 400

    def test_form17c_and_booth_risk(self, client):
        self.form17a(client, "A", *[f"E{n}" for n in range(20)])

        upload = client.post(
            "/api/audit/form17c/upload",
            json={"booth_id": "A", "constituency": "New Delhi",
                  "total_electors": 40, "total_votes_polled": 35},
        ).json()
        risk = client.get("/api/authority/booth/A/risk").json()["summary"]

        assert upload["form17a_count"] == 20
        assert risk["risk_level"] == "Critical"
        assert client.get("/api/audit/form17c/A").json()["summary"]["total_votes_polled"] == 35
        assert client.get("/api/audit/form17c/Z").status_code == 404

    def test_negative_counts_rejected(self, client):
        response = client.post(
            "/api/audit/form17c/upload",
            json={"booth_id": "A", "constituency": "New Delhi", "total_votes_polled": -3},
        )
        assert response.status_code == 422

    def test_certificate(self, client):
        response = client.get("/api/audit/certificate/New Delhi")

        certificate = response.json()["certificate"]
        assert certificate["status"] == "VERIFIED"
        assert certificate["final_confidence_index"] == 100


# =============================================================
# TEST: Error logging
# =============================================================

def test_refused_request_is_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="api.main"):
        client.get("/api/voter/epic/NOPE000000")

    assert (
        "Request failed: path=/api/voter/epic/NOPE000000 status=404 "
        "[LOW] VoterRecordNotFoundError: Voter record not found: NOPE000000"
    ) in caplog.text
